from __future__ import annotations

from dataclasses import dataclass

MEDIATE_MARKER = "mediate"
ACCUMULATE_MARKER = "+=!"
ASSIGN_MARKER = "=."


@dataclass(frozen=True)
class IRMarkers:
    """Which boundary markers an IR translation string contains."""

    mediate: bool = False
    accumulate: bool = False
    assign: bool = False

    @classmethod
    def from_ir(cls, ir: str) -> IRMarkers:
        return cls(
            mediate=MEDIATE_MARKER in ir,
            accumulate=ACCUMULATE_MARKER in ir,
            assign=ASSIGN_MARKER in ir,
        )
