"""Point budget bookkeeping for a build session."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional

from .errors import InsufficientBudget

log = logging.getLogger(__name__)


class LedgerLine(str, Enum):
    """The four consumption tallies."""

    ATTRIBUTES = "attributes"
    TRAITS = "traits"
    SKILLS = "skills"
    DRAWS = "draws"


@dataclass(frozen=True, slots=True)
class BudgetState:
    """Read-only snapshot handed to the presentation layer."""

    total_points: int
    attributes: int = 0
    traits: int = 0
    skills: int = 0
    draws: int = 0

    @property
    def consumed(self) -> int:
        return self.attributes + self.traits + self.skills + self.draws

    @property
    def remaining(self) -> int:
        return self.total_points - self.consumed

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_points": self.total_points,
            "attributes": self.attributes,
            "traits": self.traits,
            "skills": self.skills,
            "draws": self.draws,
            "remaining": self.remaining,
        }


class BudgetLedger:
    """Single source of truth for what a build can still afford.

    Any change that raises consumption is refused with
    :class:`InsufficientBudget` when it would leave ``remaining()`` below
    zero; changes that lower consumption always go through.  Check and
    commit happen under one re-entrant lock, which callers may also hold
    to make a larger read-check-write sequence atomic.
    """

    def __init__(self, total_points: int, tallies: Optional[Mapping[LedgerLine | str, int]] = None) -> None:
        if total_points < 0:
            raise ValueError("total_points cannot be negative")
        self._total = int(total_points)
        self._tallies: Dict[LedgerLine, int] = {line: 0 for line in LedgerLine}
        for line, value in (tallies or {}).items():
            self._tallies[LedgerLine(line)] = int(value)
        self.lock = threading.RLock()

    @property
    def total_points(self) -> int:
        return self._total

    def tally(self, line: LedgerLine | str) -> int:
        return self._tallies[LedgerLine(line)]

    def consumed(self) -> int:
        return sum(self._tallies.values())

    def remaining(self) -> int:
        return self._total - self.consumed()

    def can_afford(self, delta: int) -> bool:
        """Whether adding ``delta`` to consumption keeps the budget solvent."""

        with self.lock:
            return delta <= 0 or delta <= self.remaining()

    def state(self) -> BudgetState:
        with self.lock:
            return BudgetState(
                total_points=self._total,
                **{line.value: value for line, value in self._tallies.items()},
            )

    def apply(self, line: LedgerLine | str, delta: int) -> BudgetState:
        return self.apply_many({line: delta})

    def apply_many(self, changes: Mapping[LedgerLine | str, int]) -> BudgetState:
        """Post several signed adjustments as one indivisible change."""

        normalized = {LedgerLine(line): int(delta) for line, delta in changes.items()}
        net = sum(normalized.values())
        with self.lock:
            remaining = self.remaining()
            if net > 0 and net > remaining:
                raise InsufficientBudget(net, remaining)
            for line, delta in normalized.items():
                self._tallies[line] += delta
            return self.state()

    def set_total(self, total_points: int) -> BudgetState:
        """Switch the allowance; refused if current spending would exceed it."""

        total_points = int(total_points)
        with self.lock:
            consumed = self.consumed()
            if total_points < consumed:
                raise InsufficientBudget(consumed, total_points)
            log.debug("Budget total changed from %s to %s", self._total, total_points)
            self._total = total_points
            return self.state()


__all__ = ["BudgetLedger", "BudgetState", "LedgerLine"]
