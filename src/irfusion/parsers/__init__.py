"""Model importers."""

from .base import Parser
from .onnx import OnnxParser

__all__ = ["Parser", "OnnxParser"]
