# devbrain/chain/stage.py
from __future__ import annotations

from typing import Dict, Iterator, List, Tuple

from ..core.context import RequestContext
from ..schemas.chain import StageOutcome


class Stage:
    """
    One brain in the chain.

    `order` fixes the position in the pipeline; `optional` stages only run
    when the request's active stage set (see DynamicContextStage) names them.
    """

    name: str = "stage"
    order: int = 0
    optional: bool = False
    # failure of a critical stage ends the chain with the best draft available
    critical: bool = False

    async def execute(self, ctx: RequestContext) -> StageOutcome:  # pragma: no cover
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name} order={self.order}>"


class StageRegistry:
    """Explicit, ordered stage registry built once at startup."""

    def __init__(self) -> None:
        self._entries: List[Tuple[int, int, Stage]] = []
        self._names: Dict[str, Stage] = {}

    def register(self, stage: Stage) -> "StageRegistry":
        if stage.name in self._names:
            raise ValueError(f"stage {stage.name!r} already registered")
        self._entries.append((stage.order, len(self._entries), stage))
        self._names[stage.name] = stage
        return self

    def ordered(self) -> List[Stage]:
        """Ascending by order; equal orders keep registration sequence."""
        return [s for _, _, s in sorted(self._entries, key=lambda e: (e[0], e[1]))]

    def get(self, name: str) -> Stage:
        return self._names[name]

    def names(self) -> List[str]:
        return [s.name for s in self.ordered()]

    def __iter__(self) -> Iterator[Stage]:
        return iter(self.ordered())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._names
