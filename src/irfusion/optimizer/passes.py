from __future__ import annotations

from abc import ABC, abstractmethod

from irfusion.ir.graph import Graph


class PassError(Exception):
    """Raised by Pipeline when a pass reports failure."""

    def __init__(self, pass_name: str) -> None:
        super().__init__(f"Pass '{pass_name}' failed")
        self.pass_name = pass_name


class Pass(ABC):
    """Base class for graph passes."""

    name: str = "pass"

    @abstractmethod
    def run(self, graph: Graph) -> bool:
        """Transform ``graph`` in place; return False on failure."""
        raise NotImplementedError


class Pipeline:
    """An ordered sequence of passes, each run once."""

    def __init__(self, passes: list[Pass]) -> None:
        self._passes = passes

    @property
    def passes(self) -> list[Pass]:
        return list(self._passes)

    def run(self, graph: Graph) -> Graph:
        for p in self._passes:
            if not p.run(graph):
                raise PassError(p.name)
        return graph
