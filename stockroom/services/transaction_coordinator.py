"""Atomic multi-row stock mutations.

Every purchase and day-end mutation goes through ``replace``: the prior
record's deltas are reversed, then the new record's deltas are applied, all
inside one database transaction opened by ``atomic``. Create is a replace
with nothing previous; delete is a replace with nothing proposed.
"""
import enum
import json
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy.orm import Session

from stockroom.core.errors import InsufficientStock, Shortage
from stockroom.services.stock_ledger_service import apply_delta, lock_item, reverse_delta

logger = logging.getLogger("stockroom.ledger")


class OperationState(str, enum.Enum):
    VALIDATED = "VALIDATED"
    REVERSED_PRIOR = "REVERSED_PRIOR"
    APPLYING = "APPLYING"
    COMMITTED = "COMMITTED"
    FAILED = "FAILED"


_ALLOWED_TRANSITIONS = {
    OperationState.VALIDATED: {OperationState.REVERSED_PRIOR, OperationState.APPLYING, OperationState.FAILED},
    OperationState.REVERSED_PRIOR: {OperationState.APPLYING, OperationState.FAILED},
    OperationState.APPLYING: {OperationState.COMMITTED, OperationState.FAILED},
    OperationState.COMMITTED: set(),
    OperationState.FAILED: set(),
}


class LedgerOperation:
    def __init__(self, action: str, target_id: str | None = None) -> None:
        self.action = action
        self.target_id = target_id
        self.state = OperationState.VALIDATED
        self._log()

    def advance(self, state: OperationState) -> None:
        if state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"{self.action}: cannot move from {self.state.value} to {state.value}")
        self.state = state
        self._log()

    def fail(self, error: Exception) -> None:
        if self.state in (OperationState.COMMITTED, OperationState.FAILED):
            return
        self.state = OperationState.FAILED
        self._log(error=str(error))

    def _log(self, **extra) -> None:
        logger.info(
            json.dumps(
                {
                    "event": "operation.state",
                    "action": self.action,
                    "target_id": self.target_id,
                    "state": self.state.value,
                    **extra,
                }
            )
        )


@dataclass(frozen=True)
class StockDelta:
    item_id: str
    units: int


def aggregate_deltas(deltas: Sequence[StockDelta]) -> list[StockDelta]:
    """Sum deltas per item, keeping first-seen order."""
    totals: dict[str, int] = {}
    for delta in deltas:
        totals[delta.item_id] = totals.get(delta.item_id, 0) + delta.units
    return [StockDelta(item_id, units) for item_id, units in totals.items() if units]


@contextmanager
def atomic(db: Session, operation: LedgerOperation | None = None) -> Iterator[Session]:
    """Commit on success, roll back everything on any exception."""
    try:
        yield db
        if operation is not None and operation.state != OperationState.APPLYING:
            operation.advance(OperationState.APPLYING)
        db.commit()
    except Exception as exc:
        db.rollback()
        if operation is not None:
            operation.fail(exc)
        raise
    if operation is not None:
        operation.advance(OperationState.COMMITTED)


def replace(
    db: Session,
    operation: LedgerOperation,
    *,
    previous: Sequence[StockDelta],
    proposed: Sequence[StockDelta],
    action_label: str = "commit",
) -> None:
    """Reverse ``previous`` then apply ``proposed`` in the caller's transaction.

    All shortages from the apply phase are reported together. Any item left
    negative once both phases ran (a reversed purchase whose units were
    already sold) also fails the operation.
    """
    previous = aggregate_deltas(previous)
    if previous:
        for delta in previous:
            reverse_delta(db, delta.item_id, delta.units)
        operation.advance(OperationState.REVERSED_PRIOR)

    operation.advance(OperationState.APPLYING)
    shortages: list[Shortage] = []
    for delta in aggregate_deltas(proposed):
        try:
            apply_delta(db, delta.item_id, delta.units)
        except InsufficientStock as exc:
            shortages.extend(exc.shortages)

    net_by_item: dict[str, int] = {}
    for delta in previous:
        net_by_item[delta.item_id] = net_by_item.get(delta.item_id, 0) - delta.units
    for delta in proposed:
        net_by_item[delta.item_id] = net_by_item.get(delta.item_id, 0) + delta.units

    short_ids = {s.item_id for s in shortages}
    for item_id, net in net_by_item.items():
        if item_id in short_ids:
            continue
        item = lock_item(db, item_id)
        if item.current_stock_units < 0:
            # Units removed by the reversal were already sold or adjusted out.
            shortages.append(
                Shortage(
                    item_id=item.id,
                    item_name=item.name,
                    required=-net,
                    available=item.current_stock_units - net,
                )
            )

    if shortages:
        raise InsufficientStock(shortages, action=action_label)
