"""Graph IR data structures and analysis utilities."""

from .graph import Edge, Graph, GraphValidator, Node, Tensor, ValidationError
from .utils import extract_subgraph, order_subset, summarize_graph

__all__ = [
    "Edge",
    "Graph",
    "Node",
    "Tensor",
    "GraphValidator",
    "ValidationError",
    "extract_subgraph",
    "order_subset",
    "summarize_graph",
]
