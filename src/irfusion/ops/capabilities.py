from __future__ import annotations

from irfusion.ir.graph import Node

# Op type given to nodes produced by the fused-node builder.
FUSED_OP_TYPE = "Matched_Pattern"

_TENSOR_OPS: set[str] = {"Parameter", "Constant", "Variable"}
_OUTPUT_OPS: set[str] = {"Result"}


def register_tensor_op(op_type: str) -> None:
    _TENSOR_OPS.add(op_type)


def register_output_op(op_type: str) -> None:
    _OUTPUT_OPS.add(op_type)


def is_tensor_op(node: Node) -> bool:
    """True for ops whose result needs materialized tensor storage."""
    return node.op_type in _TENSOR_OPS


def is_output(node: Node) -> bool:
    return node.op_type in _OUTPUT_OPS


def is_fused(node: Node) -> bool:
    return node.op_type == FUSED_OP_TYPE
