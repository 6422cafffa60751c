from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Tensor:
    name: str
    dtype: str
    shape: list[int]
    layout: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Node:
    op_type: str
    inputs: list[str]
    outputs: list[str]
    attributes: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    name: str = ""
    # Assigned by Graph.add_node; -1 while detached.
    id: int = field(default=-1, compare=False)


@dataclass(frozen=True)
class Edge:
    """Data dependency from the producer of ``tensor`` to input slot ``dst_input`` of ``dst``."""

    src: int
    dst: int
    tensor: str
    dst_input: int


class ValidationError(Exception):
    """Graph validation error with optional code and context."""

    def __init__(
        self, message: str, code: str = "EVALID", node_id: int | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.node_id = node_id


@dataclass
class Graph:
    """
    Arena of nodes addressed by stable integer ids.

    Edges are not stored: they are derived from tensor names through the
    producer and consumer indices, which are kept current by add_node and
    remove_node. A node's inputs/outputs must not be edited after insertion.
    """

    nodes: dict[int, Node] = field(default_factory=dict)
    tensors: dict[str, Tensor] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    inputs: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    _next_id: int = field(default=0, init=False, repr=False)
    _producers: dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _consumers: dict[str, list[tuple[int, int]]] = field(
        default_factory=dict, init=False, repr=False
    )

    def __post_init__(self) -> None:
        initial = list(self.nodes.values())
        self.nodes = {}
        for node in initial:
            self.add_node(node)

    def add_node(self, node: Node) -> int:
        for out in node.outputs:
            if out in self._producers:
                raise ValidationError(
                    f"Multiple producers for tensor '{out}': node {self._producers[out]} "
                    f"and new {node.op_type} node",
                    code="EDUP_PRODUCER",
                    node_id=self._producers[out],
                )
        node.id = self._next_id
        self._next_id += 1
        self.nodes[node.id] = node
        for out in node.outputs:
            self._producers[out] = node.id
        for slot, inp in enumerate(node.inputs):
            self._consumers.setdefault(inp, []).append((node.id, slot))
        return node.id

    def remove_node(self, node_id: int) -> Node:
        node = self.nodes.pop(node_id)
        for out in node.outputs:
            if self._producers.get(out) == node_id:
                del self._producers[out]
        for inp in set(node.inputs):
            remaining = [c for c in self._consumers.get(inp, []) if c[0] != node_id]
            if remaining:
                self._consumers[inp] = remaining
            else:
                self._consumers.pop(inp, None)
        return node

    def get_node(self, node_id: int) -> Node:
        return self.nodes[node_id]

    def add_tensor(self, tensor: Tensor) -> None:
        self.tensors[tensor.name] = tensor

    def get_tensor(self, name: str) -> Tensor | None:
        return self.tensors.get(name)

    def producer(self, tensor: str) -> int | None:
        return self._producers.get(tensor)

    def consumers(self, tensor: str) -> list[tuple[int, int]]:
        """(node id, input slot) pairs reading ``tensor``."""
        return list(self._consumers.get(tensor, []))

    def in_edges(self, node_id: int) -> list[Edge]:
        node = self.nodes[node_id]
        edges: list[Edge] = []
        for slot, inp in enumerate(node.inputs):
            src = self._producers.get(inp)
            if src is not None:
                edges.append(Edge(src=src, dst=node_id, tensor=inp, dst_input=slot))
        return edges

    def out_edges(self, node_id: int) -> list[Edge]:
        node = self.nodes[node_id]
        edges: list[Edge] = []
        for out in node.outputs:
            for dst, slot in sorted(self._consumers.get(out, [])):
                edges.append(Edge(src=node_id, dst=dst, tensor=out, dst_input=slot))
        return edges

    def predecessors(self, node_id: int) -> list[int]:
        return [e.src for e in self.in_edges(node_id)]

    def ordered_nodes(self) -> list[Node]:
        """Nodes in topological order; ready nodes are taken by ascending id."""
        return GraphValidator(self).toposort()


class GraphValidator:
    """Validates basic graph invariants and provides toposort."""

    def __init__(self, graph: Graph) -> None:
        self.graph = graph

    def validate(self) -> None:
        self._validate_tensors_typed()
        self._validate_node_io_exist()
        self._validate_inputs_outputs_exist()
        self._topological_order()  # raises on cycles

    def _validate_tensors_typed(self) -> None:
        for name, t in self.graph.tensors.items():
            if not t.dtype or not isinstance(t.dtype, str):
                raise ValidationError(
                    f"Tensor '{name}' missing dtype", code="ETENSOR_DTYPE"
                )
            if t.shape is None or not isinstance(t.shape, list):
                raise ValidationError(
                    f"Tensor '{name}' missing shape", code="ETENSOR_SHAPE"
                )
            for dim in t.shape:
                if not isinstance(dim, int) or dim <= 0:
                    raise ValidationError(
                        f"Tensor '{name}' has invalid shape {t.shape}",
                        code="ETENSOR_SHAPE",
                    )

    def _validate_node_io_exist(self) -> None:
        for node_id, node in self.graph.nodes.items():
            for name in node.inputs:
                if name not in self.graph.tensors:
                    raise ValidationError(
                        f"Node {node_id} ({node.op_type}) input '{name}' not found in tensors",
                        code="EINPUT_MISSING",
                        node_id=node_id,
                    )
            for name in node.outputs:
                if name not in self.graph.tensors:
                    raise ValidationError(
                        f"Node {node_id} ({node.op_type}) output '{name}' not found in tensors",
                        code="EOUTPUT_MISSING",
                        node_id=node_id,
                    )

    def _validate_inputs_outputs_exist(self) -> None:
        for name in self.graph.inputs:
            if name not in self.graph.tensors:
                raise ValidationError(
                    f"Graph input '{name}' missing tensor", code="EGRAPH_INPUT"
                )
        for name in self.graph.outputs:
            if name not in self.graph.tensors:
                raise ValidationError(
                    f"Graph output '{name}' missing tensor", code="EGRAPH_OUTPUT"
                )

    def _topological_order(self) -> list[int]:
        """
        Return topological order of node ids. Raise ValidationError on cycles.
        """
        indegree: dict[int, int] = {}
        for node_id in self.graph.nodes:
            indegree[node_id] = len(self.graph.in_edges(node_id))

        # Kahn's algorithm with a min-heap so the order is stable across runs
        ready: list[int] = [i for i, d in indegree.items() if d == 0]
        heapq.heapify(ready)
        order: list[int] = []
        while ready:
            u = heapq.heappop(ready)
            order.append(u)
            for edge in self.graph.out_edges(u):
                indegree[edge.dst] -= 1
                if indegree[edge.dst] == 0:
                    heapq.heappush(ready, edge.dst)

        if len(order) != len(self.graph.nodes):
            stuck = sorted(set(self.graph.nodes) - set(order))
            raise ValidationError(
                "Cycle detected in graph", code="ECYCLE", node_id=stuck[0]
            )
        return order

    def toposort(self) -> list[Node]:
        return [self.graph.nodes[i] for i in self._topological_order()]
