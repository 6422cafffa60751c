"""Graph optimization passes and pipelines."""

from .fused import FusedNodeBuilder
from .ir_fusion import BoundaryTagger, FusionClusterer, IRBasedFusionPass, MalformedGraphError
from .markers import IRMarkers
from .passes import Pass, PassError, Pipeline


def build_default_pipeline(*, ir_based_fusion: bool = False) -> Pipeline:
    passes: list[Pass] = [IRBasedFusionPass(enabled=ir_based_fusion)]
    return Pipeline(passes)

__all__ = [
    "Pipeline",
    "Pass",
    "PassError",
    "BoundaryTagger",
    "FusionClusterer",
    "FusedNodeBuilder",
    "IRBasedFusionPass",
    "IRMarkers",
    "MalformedGraphError",
    "build_default_pipeline",
]
