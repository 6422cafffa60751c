from __future__ import annotations

import heapq
from collections import Counter
from collections.abc import Iterable
from typing import Any

from irfusion.ir.graph import Graph, Node, Tensor


def order_subset(graph: Graph, node_ids: Iterable[int]) -> list[Node]:
    """
    Topological order of the given nodes, looking only at edges between them.
    Ready nodes are taken by ascending id, as in Graph.ordered_nodes().
    """
    members = set(node_ids)
    indegree = {
        i: sum(1 for e in graph.in_edges(i) if e.src in members) for i in members
    }
    ready = [i for i, d in indegree.items() if d == 0]
    heapq.heapify(ready)
    order: list[Node] = []
    while ready:
        u = heapq.heappop(ready)
        order.append(graph.get_node(u))
        for edge in graph.out_edges(u):
            if edge.dst in members:
                indegree[edge.dst] -= 1
                if indegree[edge.dst] == 0:
                    heapq.heappush(ready, edge.dst)
    return order


def extract_subgraph(graph: Graph, node_ids: set[int]) -> Graph:
    """
    Create a new Graph that contains copies of the given nodes.
    - Nodes are added in topological order (see order_subset).
    - Tensors include any referenced by the included nodes (inputs/outputs).
    - Graph inputs: tensors consumed by included nodes but not produced within the set.
    - Graph outputs: tensors produced by included nodes that are consumed outside the set
      or are outputs of the original graph.
    """
    if not node_ids:
        return Graph()

    ordered = order_subset(graph, node_ids)

    sub = Graph()
    produced: list[str] = []
    used: list[str] = []
    for node in ordered:
        sub.add_node(
            Node(
                op_type=node.op_type,
                inputs=list(node.inputs),
                outputs=list(node.outputs),
                attributes=dict(node.attributes),
                metadata=dict(node.metadata),
                name=node.name,
            )
        )
        used.extend(t for t in node.inputs if t not in used)
        produced.extend(t for t in node.outputs if t not in produced)

    for name in used + produced:
        t = graph.get_tensor(name)
        if t is not None and name not in sub.tensors:
            sub.add_tensor(
                # shallow copy
                Tensor(
                    name=t.name,
                    dtype=t.dtype,
                    shape=list(t.shape),
                    layout=t.layout,
                    metadata=dict(t.metadata),
                )
            )

    sub.inputs = [
        t for t in used if graph.producer(t) is None or graph.producer(t) not in node_ids
    ]
    graph_outputs = set(graph.outputs)
    sub.outputs = [
        t
        for t in produced
        if t in graph_outputs
        or any(c not in node_ids for c, _ in graph.consumers(t))
    ]
    return sub


def summarize_graph(graph: Graph) -> dict[str, Any]:
    """Op-type histogram plus the last fusion report, if any. JSON-serializable."""
    counts = Counter(node.op_type for node in graph.nodes.values())
    summary: dict[str, Any] = {
        "num_nodes": len(graph.nodes),
        "op_counts": dict(sorted(counts.items())),
    }
    report = graph.metadata.get("ir_based_fusion")
    if report is not None:
        summary["ir_based_fusion"] = report
    return summary
