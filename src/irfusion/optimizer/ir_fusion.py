"""
IR-based fusion.

Nodes whose IR translation or graph position makes them unsafe to inline
into a consumer are tagged as boundaries. Each boundary node then seeds a
backward closure over untagged producers, and every closure larger than
its seed is replaced by a single Matched_Pattern node.
"""

from __future__ import annotations

from collections import deque
from typing import Any

from irfusion.ir.graph import Graph, ValidationError
from irfusion.ops.capabilities import is_fused, is_output, is_tensor_op
from irfusion.ops.translate import Translator, get_translation
from irfusion.optimizer.fused import FusedNodeBuilder
from irfusion.optimizer.markers import IRMarkers
from irfusion.optimizer.passes import Pass
from irfusion.utils import get_logger

logger = get_logger(__name__)


class MalformedGraphError(ValidationError):
    """A node lacks an incoming edge that a tagging rule needs."""

    def __init__(self, node_id: int, op_type: str, rule: str, edge_index: int = 0) -> None:
        super().__init__(
            f"Node {node_id} ({op_type}) has no incoming edge {edge_index} "
            f"required by the {rule} rule",
            code="EMALFORMED",
            node_id=node_id,
        )
        self.op_type = op_type
        self.rule = rule
        self.edge_index = edge_index


class BoundaryTagger:
    """Compute the set of node ids that must not be absorbed into a consumer's cluster."""

    def __init__(self, translate: Translator = get_translation) -> None:
        self._translate = translate

    def tag(self, graph: Graph, order: list[int] | None = None) -> set[int]:
        if order is None:
            order = [n.id for n in graph.ordered_nodes()]
        tagged: set[int] = set()
        for node_id in order:
            node = graph.get_node(node_id)
            in_edges = graph.in_edges(node_id)

            # multi-used op
            if len(graph.out_edges(node_id)) > 1:
                tagged.add(node_id)
            if is_tensor_op(node):
                tagged.add(node_id)
            if is_output(node):
                if not in_edges:
                    raise MalformedGraphError(node_id, node.op_type, "output")
                tagged.add(in_edges[0].src)

            markers = IRMarkers.from_ir(self._translate(graph, node))
            if markers.mediate:
                logger.info("mediate IR in %s (node %d)", node.op_type, node_id)
                tagged.update(e.src for e in in_edges)
            if markers.accumulate:
                tagged.add(node_id)
            if markers.assign:
                if not in_edges:
                    raise MalformedGraphError(node_id, node.op_type, "assign")
                tagged.add(node_id)
                tagged.add(in_edges[0].src)
        return tagged


class FusionClusterer:
    """Grow a backward closure from each boundary node and fuse it when non-trivial."""

    def __init__(
        self,
        graph: Graph,
        boundary: set[int],
        builder: FusedNodeBuilder | None = None,
    ) -> None:
        self.graph = graph
        self.boundary = frozenset(boundary)
        self.builder = builder or FusedNodeBuilder()

    def collect(self, seed: int) -> list[int]:
        """Cluster for ``seed`` in visiting order, seed first."""
        collected: list[int] = []
        visited: set[int] = set()
        ready: deque[int] = deque([seed])
        while ready:
            node_id = ready.popleft()
            if node_id in visited:
                continue
            visited.add(node_id)
            collected.append(node_id)
            for edge in self.graph.in_edges(node_id):
                src = edge.src
                if src in self.boundary or is_fused(self.graph.get_node(src)):
                    continue
                if src not in visited:
                    ready.append(src)
        return collected

    def cluster_and_fuse(self, seed: int) -> int | None:
        """Return the id of the inserted fused node, or None if nothing was fused."""
        if seed not in self.graph.nodes:
            return None
        cluster = self.collect(seed)
        if len(cluster) <= 1:
            return None
        fused = self.builder.build(cluster, self.graph, clean_graph=True)
        fused_id = self.graph.add_node(fused)
        logger.debug(
            "fused %d nodes seeded at %d into %s (node %d)",
            len(cluster),
            seed,
            fused.name,
            fused_id,
        )
        return fused_id


class IRBasedFusionPass(Pass):
    """
    Tag boundaries, then fuse the closure of each boundary node.

    Disabled unless ``enabled`` is set. Boundary nodes are processed in the
    topological order computed before any fusion, so results do not depend
    on set iteration order.
    """

    name = "ir_based_fusion"

    def __init__(
        self,
        enabled: bool = False,
        *,
        translate: Translator = get_translation,
        builder: FusedNodeBuilder | None = None,
    ) -> None:
        self.enabled = enabled
        self._translate = translate
        # shared across runs so fused-node names keep counting
        self._builder = builder or FusedNodeBuilder(translate)

    def run(self, graph: Graph) -> bool:
        if not self.enabled:
            return True

        order = [n.id for n in graph.ordered_nodes()]
        boundary = BoundaryTagger(self._translate).tag(graph, order)
        clusterer = FusionClusterer(graph, boundary, self._builder)

        fusions: list[dict[str, Any]] = []
        for seed in (i for i in order if i in boundary):
            fused_id = clusterer.cluster_and_fuse(seed)
            if fused_id is not None:
                fusions.append(
                    {
                        "seed": seed,
                        "node": fused_id,
                        "members": list(graph.get_node(fused_id).metadata.get("member_ids", [])),
                    }
                )

        graph.metadata[self.name] = {"boundary": len(boundary), "fusions": fusions}
        logger.info(
            "ir-based fusion: %d boundary nodes, %d fused kernels",
            len(boundary),
            len(fusions),
        )
        return True
