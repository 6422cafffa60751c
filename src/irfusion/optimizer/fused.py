from __future__ import annotations

from collections.abc import Sequence

from irfusion.ir.graph import Graph, Node
from irfusion.ir.utils import extract_subgraph, order_subset
from irfusion.ops.capabilities import FUSED_OP_TYPE
from irfusion.ops.translate import Translator, get_translation


class FusedNodeBuilder:
    """
    Build one Matched_Pattern node standing in for a cluster of nodes.

    The fused node keeps the member tensor names: it consumes the tensors the
    members read from outside the cluster and produces the member tensors that
    are read outside the cluster (or are graph outputs), so inserting it after
    the members are removed rewires every downstream consumer.
    """

    def __init__(
        self, translate: Translator = get_translation, name_prefix: str = "fused_kernel"
    ) -> None:
        self._translate = translate
        self._name_prefix = name_prefix
        self._count = 0

    def build(self, cluster: Sequence[int], graph: Graph, *, clean_graph: bool = True) -> Node:
        """
        ``cluster`` is in collection order, seed first; that order decides the
        fused node's input order. With ``clean_graph`` the members are removed
        from ``graph`` and the caller is expected to add the returned node.
        """
        member_ids = set(cluster)
        members = order_subset(graph, member_ids)
        produced = {t for n in members for t in n.outputs}

        # one slot per external read so producer out-degrees are unchanged
        inputs = [
            t for node_id in cluster for t in graph.get_node(node_id).inputs if t not in produced
        ]

        graph_outputs = set(graph.outputs)
        outputs = [
            t
            for n in members
            for t in n.outputs
            if t in graph_outputs
            or any(c not in member_ids for c, _ in graph.consumers(t))
        ]

        fused = Node(
            op_type=FUSED_OP_TYPE,
            inputs=inputs,
            outputs=outputs,
            attributes={
                "members": [n.op_type for n in members],
                "ir": "; ".join(ir for ir in (self._translate(graph, n) for n in members) if ir),
            },
            metadata={
                "subgraph": extract_subgraph(graph, member_ids),
                "member_ids": [n.id for n in members],
            },
            name=f"{self._name_prefix}_{self._count}",
        )
        self._count += 1

        if clean_graph:
            for n in members:
                graph.remove_node(n.id)
        return fused
