"""Typed rejections raised by the rules engine.

Every error here is an expected, recoverable outcome of a single request.  The
operation that raised it has left all state untouched, so callers can show the
message (and the numeric shortfall where there is one) and carry on.
"""

from __future__ import annotations

from typing import Sequence


class RulesError(ValueError):
    """Base class for rule violations reported to the presentation layer."""


class OutOfRange(RulesError):
    def __init__(self, attribute: str, value: int, minimum: int, maximum: int) -> None:
        self.attribute = attribute
        self.value = value
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(
            f"{attribute} must lie within [{minimum}, {maximum}], received {value}"
        )


class InsufficientBudget(RulesError):
    def __init__(self, required: int, remaining: int) -> None:
        self.required = required
        self.remaining = remaining
        self.shortfall = required - remaining
        super().__init__(f"点数不足，还需要 {self.shortfall} 点")


class EmptyPool(RulesError):
    def __init__(self, pool: str) -> None:
        self.pool = pool
        super().__init__(f"没有可抽取的条目了: {pool}")


class Irrevocable(RulesError):
    def __init__(self, key: str, origin: str) -> None:
        self.key = key
        self.origin = origin
        super().__init__(f"{key} was {origin} and cannot be removed")


class NotPurchasable(RulesError):
    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"{key} is granted by attribute thresholds and cannot be chosen")


class TerminalState(RulesError):
    def __init__(self) -> None:
        super().__init__("已达至境巅峰，无法再突破")


class TerminalMastery(RulesError):
    def __init__(self, skill: str) -> None:
        self.skill = skill
        super().__init__(f"{skill} 已达出神入化之境，无法再精进")


class InsufficientCultivation(RulesError):
    def __init__(self, cost: int, cultivation: int) -> None:
        self.cost = cost
        self.cultivation = cultivation
        self.shortfall = cost - cultivation
        super().__init__(f"修为不足，还需 {self.shortfall} 点修为")


class UnrecognizedRealm(RulesError):
    def __init__(self, label: str) -> None:
        self.label = label
        super().__init__(f"无法识别当前境界: {label!r}")


class MalformedBuild(RulesError):
    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("Malformed build: " + ", ".join(self.errors))


__all__ = [
    "EmptyPool",
    "InsufficientBudget",
    "InsufficientCultivation",
    "Irrevocable",
    "MalformedBuild",
    "NotPurchasable",
    "OutOfRange",
    "RulesError",
    "TerminalMastery",
    "TerminalState",
    "UnrecognizedRealm",
]
