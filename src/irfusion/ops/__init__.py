"""Operator capability queries and IR translation."""

from .capabilities import (
    FUSED_OP_TYPE,
    is_fused,
    is_output,
    is_tensor_op,
    register_output_op,
    register_tensor_op,
)
from .translate import Translator, get_translation, register_translation

__all__ = [
    "FUSED_OP_TYPE",
    "is_fused",
    "is_output",
    "is_tensor_op",
    "register_output_op",
    "register_tensor_op",
    "Translator",
    "get_translation",
    "register_translation",
]
