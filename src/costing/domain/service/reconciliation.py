"""Domain service: Reconciliation.

The incremental path trusts the snapshot stored on the previous event.
One corrupted snapshot therefore corrupts every later one.  This checker
replays a key from the raw movements and compares the expected state
after every event with what was stored.

It only reports.  Writing a correcting entry is the caller's decision.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from costing.domain.model.cost_layer import CostingKey, CostLayerEvent, WacSnapshot
from costing.domain.repository.cost_layer_repository import CostLayerRepository
from costing.domain.service.wac_calculator import ReplayResult, replay, replay_steps
from costing.logging_config import LogContext, get_logger

logger = get_logger("domain.reconciliation")

DEFAULT_TOLERANCE = Decimal("0.0001")


@dataclass(frozen=True)
class SnapshotMismatch:
    """One stored field that disagrees with the replayed expectation."""

    event_id: str
    field: str
    expected: Decimal | int | str | None
    stored: Decimal | int | str | None
    difference: Decimal | None = None

    def describe(self) -> str:
        text = f"event {self.event_id}: {self.field} expected {self.expected}, stored {self.stored}"
        if self.difference is not None:
            text += f" (off by {self.difference})"
        return text


@dataclass(frozen=True)
class ReconciliationReport:
    key: CostingKey
    replay: ReplayResult
    stored: WacSnapshot | None
    mismatches: tuple[SnapshotMismatch, ...] = ()

    @property
    def is_consistent(self) -> bool:
        return not self.mismatches

    @property
    def first_divergence(self) -> SnapshotMismatch | None:
        return self.mismatches[0] if self.mismatches else None

    @property
    def divergent_event_ids(self) -> list[str]:
        seen: list[str] = []
        for mismatch in self.mismatches:
            if mismatch.event_id not in seen:
                seen.append(mismatch.event_id)
        return seen


def compare_events(
    key: CostingKey,
    events: list[CostLayerEvent],
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> ReconciliationReport:
    """Compare every stored snapshot of a key against a fresh replay."""
    mismatches: list[SnapshotMismatch] = []
    previous_id: str | None = None

    for event, expected in replay_steps(key, events):
        if event.qty_on_hand_at_event != expected.qty_on_hand:
            mismatches.append(
                SnapshotMismatch(
                    event_id=event.id,
                    field="qty_on_hand_at_event",
                    expected=expected.qty_on_hand,
                    stored=event.qty_on_hand_at_event,
                    difference=Decimal(abs(event.qty_on_hand_at_event - expected.qty_on_hand)),
                )
            )
        for name, stored, wanted in (
            ("wac_at_event", event.wac_at_event, expected.wac),
            ("total_value_at_event", event.total_value_at_event, expected.total_value),
        ):
            if stored.currency != wanted.currency:
                mismatches.append(
                    SnapshotMismatch(
                        event_id=event.id,
                        field=f"{name}.currency",
                        expected=wanted.currency,
                        stored=stored.currency,
                    )
                )
                continue
            diff = stored.difference(wanted)
            if diff > tolerance:
                mismatches.append(
                    SnapshotMismatch(
                        event_id=event.id,
                        field=name,
                        expected=wanted.amount,
                        stored=stored.amount,
                        difference=diff,
                    )
                )
        # A broken chain means two writers computed from the same snapshot.
        if event.previous_event_id != previous_id:
            mismatches.append(
                SnapshotMismatch(
                    event_id=event.id,
                    field="previous_event_id",
                    expected=previous_id,
                    stored=event.previous_event_id,
                )
            )
        previous_id = event.id

    latest = max(events, key=lambda e: e.ordering, default=None)
    return ReconciliationReport(
        key=key,
        replay=replay(key, events),
        stored=latest.snapshot if latest is not None else None,
        mismatches=tuple(mismatches),
    )


class ReconciliationChecker:
    """Replays keys from the ledger and reports drift."""

    def __init__(
        self,
        event_repo: CostLayerRepository,
        tolerance: Decimal = DEFAULT_TOLERANCE,
    ) -> None:
        self._event_repo = event_repo
        self._tolerance = tolerance

    def check(self, key: CostingKey) -> ReconciliationReport:
        """Reconcile one key.  Reads the log once, as a single snapshot."""
        with LogContext.bind_key(key):
            events = self._event_repo.list_for_key(key)
            report = compare_events(key, events, self._tolerance)
            if report.is_consistent:
                logger.info(
                    "Reconciled %s: %d events consistent",
                    key,
                    report.replay.event_count,
                )
            else:
                logger.warning(
                    "Reconciliation mismatch for %s: %s",
                    key,
                    report.first_divergence.describe(),
                    extra={
                        "mismatch_count": len(report.mismatches),
                        "divergent_events": report.divergent_event_ids,
                    },
                )
            return report

    def check_all(self) -> list[ReconciliationReport]:
        """Reconcile every key in the ledger, in key order."""
        return [self.check(key) for key in sorted(self._event_repo.list_keys())]
