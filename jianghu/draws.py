"""Depleting random draw pools over the catalog."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Tuple

from .errors import EmptyPool, InsufficientBudget
from .ledger import BudgetLedger, BudgetState, LedgerLine
from .models._validation import ChoiceSpec, FieldSpec, IntRangeSpec, ModelValidator, is_non_empty_str
from .models.build import SelectedEntry, Selection, SelectionOrigin
from .models.catalog import Catalog, CatalogCategory, CatalogEntry

log = logging.getLogger(__name__)

POOL_SIGNS = ("positive", "negative", "any")


class RandomSource(Protocol):
    def randrange(self, stop: int) -> int: ...


@dataclass(frozen=True, slots=True)
class DrawPoolSpec:
    """Pool definition: a cost-sign predicate over one category plus a fee."""

    id: str
    name: str
    category: CatalogCategory
    sign: str = "any"
    fee: int = 0

    def matches(self, entry: CatalogEntry) -> bool:
        if entry.category is not self.category or entry.is_triggered:
            return False
        if self.sign == "positive":
            return entry.cost > 0
        if self.sign == "negative":
            return entry.cost < 0
        return True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DrawPoolSpec":
        payload = DrawPoolSpecValidator.validate(data)
        return cls(
            id=payload["id"].strip(),
            name=str(payload.get("name") or payload["id"]).strip(),
            category=CatalogCategory.from_value(payload["category"]),
            sign=payload.get("sign", "any"),
            fee=payload.get("fee", 0),
        )


class DrawPoolSpecValidator(ModelValidator):
    model = DrawPoolSpec
    fields = {
        "id": FieldSpec(is_non_empty_str, "a non-empty pool id"),
        "name": FieldSpec(str, "a pool name", required=False),
        "category": FieldSpec(ChoiceSpec({item.value for item in CatalogCategory}), "a catalog category"),
        "sign": FieldSpec(ChoiceSpec(POOL_SIGNS), "positive, negative or any", required=False),
        "fee": FieldSpec(IntRangeSpec(minimum=0), "a non-negative draw fee", required=False),
    }


@dataclass(frozen=True, slots=True)
class DrawOutcome:
    pool: str
    entry: CatalogEntry
    fee: int
    refund: int
    budget: BudgetState


class DrawPool:
    """One draw category bound to the catalog.

    The undrawn set is the matching catalog entries minus everything already
    in the build's selection, so it only ever shrinks as the selection grows
    and every pool over the same category sees the same removals.
    """

    def __init__(self, spec: DrawPoolSpec, catalog: Catalog) -> None:
        self.spec = spec
        self._catalog = catalog

    @property
    def id(self) -> str:
        return self.spec.id

    @property
    def fee(self) -> int:
        return self.spec.fee

    def candidates(self, selection: Selection) -> Tuple[CatalogEntry, ...]:
        return tuple(
            entry
            for entry in self._catalog.entries(self.spec.category)
            if self.spec.matches(entry) and entry.key not in selection
        )

    def draw(self, selection: Selection, ledger: BudgetLedger, rng: RandomSource) -> DrawOutcome:
        """Pick one remaining entry uniformly and charge the pool fee.

        Emptiness and affordability are both checked before the random source
        is consulted; a failed draw leaves the ledger, the selection and the
        random source untouched.  A drawn negative-cost entry posts its refund
        on its own category line next to the fee on the draw line.
        """

        with ledger.lock:
            candidates = self.candidates(selection)
            if not candidates:
                raise EmptyPool(self.spec.id)
            remaining = ledger.remaining()
            if not ledger.can_afford(self.spec.fee):
                raise InsufficientBudget(self.spec.fee, remaining)

            entry = candidates[rng.randrange(len(candidates))]
            refund = entry.cost if entry.cost < 0 else 0
            changes = {LedgerLine.DRAWS: self.spec.fee}
            if refund:
                changes[LedgerLine(entry.category.value)] = refund
            state = ledger.apply_many(changes)
            selection.add(SelectedEntry(entry.key, SelectionOrigin.DRAWN, self.spec.fee))

        log.debug(
            "Drew %s from %s (fee %s, refund %s, remaining %s)",
            entry.key,
            self.spec.id,
            self.spec.fee,
            -refund,
            state.remaining,
        )
        return DrawOutcome(self.spec.id, entry, self.spec.fee, -refund, state)


__all__ = ["DrawOutcome", "DrawPool", "DrawPoolSpec", "POOL_SIGNS", "RandomSource"]
