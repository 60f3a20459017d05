"""Integration tests for the RecordMovement use case."""

from datetime import datetime, timedelta, timezone

import pytest

from costing.application.dto import MovementRequest
from costing.application.record_movement import RecordMovementHandler
from costing.domain.exceptions import ConcurrentAppendError, ValidationError
from costing.domain.model.cost_layer import CostingKey, CostLayerEvent, EventType, Movement
from costing.domain.model.value_objects import Money
from costing.domain.service.reconciliation import ReconciliationChecker
from costing.domain.service.wac_calculator import replay
from tests.fakes import FakeCostLayerRepository

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
KEY = CostingKey("inst-1", "card-42", "wh-main")


def _request(qty, cost="0", event_type=None, minutes=0, **overrides):
    if event_type is None:
        event_type = "GOODS_RECEIPT" if qty > 0 else "SALE"
    fields = dict(
        installation_id=KEY.installation_id,
        item_id=KEY.item_id,
        location_id=KEY.location_id,
        event_type=event_type,
        qty_delta=qty,
        unit_cost=cost,
        event_timestamp=T0 + timedelta(minutes=minutes),
    )
    fields.update(overrides)
    return MovementRequest(**fields)


def _setup(**kwargs):
    repo = FakeCostLayerRepository()
    ids = (f"ev-{n}" for n in range(1, 1000))
    handler = RecordMovementHandler(
        repo,
        clock=lambda: T0,
        id_factory=lambda: next(ids),
        **kwargs,
    )
    return repo, handler


class TestRecordMovementHappyPath:

    def test_first_receipt(self):
        repo, handler = _setup()

        dto = handler.handle(_request(10, "5"))

        assert dto.id == "ev-1"
        assert dto.qty_on_hand == 10
        assert dto.wac == "5.0000"
        assert dto.total_value == "50.00"
        assert dto.previous_event_id is None
        stored = repo.get_by_id("ev-1")
        assert stored.sequence == 1
        assert stored.event_type is EventType.GOODS_RECEIPT

    def test_blend_then_issue(self):
        repo, handler = _setup()

        handler.handle(_request(10, "5", minutes=1))
        handler.handle(_request(10, "7", minutes=2))
        dto = handler.handle(_request(-5, minutes=3))

        assert dto.qty_on_hand == 15
        assert dto.wac == "6.0000"
        assert dto.total_value == "90.00"
        assert dto.previous_event_id == "ev-2"

    def test_landed_cost_and_references_stored(self):
        repo, handler = _setup()

        handler.handle(
            _request(
                4, "2.00",
                event_type="BUYLIST_RECEIPT",
                landed_cost_delta="0.25",
                source_reference="buylist-line-7",
                created_by="user-3",
            )
        )

        stored = repo.get_by_id("ev-1")
        assert stored.total_value_at_event == Money.of("9.00")
        assert stored.source_reference == "buylist-line-7"
        assert stored.created_by == "user-3"

    def test_timestamp_defaults_to_clock(self):
        repo, handler = _setup()
        handler.handle(_request(1, "1", event_timestamp=None))
        assert repo.get_by_id("ev-1").event_timestamp == T0

    def test_equal_timestamps_allowed(self):
        repo, handler = _setup()
        handler.handle(_request(1, "1"))
        handler.handle(_request(1, "3"))
        assert repo.get_latest(KEY).wac_at_event == Money.of("2")

    def test_oversell_is_clamped_not_rejected(self):
        repo, handler = _setup()
        handler.handle(_request(5, "4", minutes=1))
        dto = handler.handle(_request(-8, minutes=2))
        assert dto.qty_on_hand == 0
        assert dto.total_value == "0.00"

    def test_adjustment_accepts_either_sign(self):
        repo, handler = _setup()
        handler.handle(_request(5, "4", event_type="ADJUSTMENT", minutes=1))
        dto = handler.handle(_request(-2, event_type="ADJUSTMENT", minutes=2))
        assert dto.qty_on_hand == 3

    def test_keys_are_isolated(self):
        repo, handler = _setup()
        handler.handle(_request(10, "5"))
        handler.handle(_request(10, "50", item_id="card-99"))
        assert repo.get_latest(KEY).wac_at_event == Money.of("5")

    def test_handle_many_costs_lines_in_order(self):
        repo, handler = _setup()

        dtos = handler.handle_many(
            [_request(10, "5", minutes=1), _request(10, "7", minutes=1), _request(-4, minutes=2)]
        )

        assert [d.qty_on_hand for d in dtos] == [10, 20, 16]
        assert dtos[-1].total_value == "96.00"

    def test_incremental_agrees_with_replay_and_reconciles(self):
        repo, handler = _setup()
        for i, (qty, cost) in enumerate(
            [(3, "1.10"), (-1, "0"), (7, "2.35"), (-4, "0"), (-9, "0"), (2, "3.33"), (5, "0.07")],
            start=1,
        ):
            handler.handle(_request(qty, cost, minutes=i))

        result = replay(KEY, repo.list_for_key(KEY))
        latest = repo.get_latest(KEY)
        assert result.total_value == latest.total_value_at_event
        assert result.wac == latest.wac_at_event
        assert result.qty_on_hand == latest.qty_on_hand_at_event
        assert ReconciliationChecker(repo).check(KEY).is_consistent


class TestRecordMovementValidation:

    def test_negative_unit_cost_rejected(self):
        repo, handler = _setup()
        with pytest.raises(ValidationError, match="cannot be negative"):
            handler.handle(_request(1, "-2"))
        assert repo.append_calls == 0

    def test_non_finite_cost_rejected(self):
        _, handler = _setup()
        with pytest.raises(ValidationError, match="finite"):
            handler.handle(_request(1, "Infinity"))

    def test_zero_quantity_rejected(self):
        _, handler = _setup()
        with pytest.raises(ValidationError, match="cannot be zero"):
            handler.handle(_request(0, event_type="ADJUSTMENT"))

    def test_receipt_with_negative_quantity_rejected(self):
        _, handler = _setup()
        with pytest.raises(ValidationError, match="requires a positive quantity"):
            handler.handle(_request(-1, event_type="GOODS_RECEIPT"))

    def test_sale_with_positive_quantity_rejected(self):
        _, handler = _setup()
        with pytest.raises(ValidationError, match="requires a negative quantity"):
            handler.handle(_request(1, event_type="SALE"))

    def test_unknown_event_type_rejected(self):
        _, handler = _setup()
        with pytest.raises(ValidationError, match="Unknown event type"):
            handler.handle(_request(1, event_type="GIFT"))

    def test_naive_timestamp_rejected(self):
        _, handler = _setup()
        with pytest.raises(ValidationError, match="timezone-aware"):
            handler.handle(_request(1, "1", event_timestamp=datetime(2025, 1, 1)))

    def test_backdated_event_rejected(self):
        repo, handler = _setup()
        handler.handle(_request(1, "1", minutes=10))
        with pytest.raises(ValidationError, match="earlier than the latest event"):
            handler.handle(_request(1, "1", minutes=5))
        assert len(repo.list_for_key(KEY)) == 1

    def test_blank_key_rejected(self):
        _, handler = _setup()
        with pytest.raises(ValidationError, match="location_id"):
            handler.handle(_request(1, "1", location_id=""))

    def test_currency_switch_within_key_rejected(self):
        _, handler = _setup()
        handler.handle(_request(1, "1"))
        with pytest.raises(ValidationError, match="Cannot combine"):
            handler.handle(_request(1, "1", currency="EUR"))

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            RecordMovementHandler(FakeCostLayerRepository(), max_attempts=0)


class TestRecordMovementConcurrency:

    def _racing_event(self, repo, event_id="racer"):
        """An event another writer appends between our read and our write."""
        latest = repo.get_latest(KEY)
        event = CostLayerEvent(
            id=event_id,
            key=KEY,
            event_type=EventType.GOODS_RECEIPT,
            movement=Movement.of(10, "9"),
            event_timestamp=T0,
            qty_on_hand_at_event=latest.qty_on_hand_at_event + 10,
            wac_at_event=Money.of("7"),
            total_value_at_event=latest.total_value_at_event + Money.of("90"),
            previous_event_id=latest.id,
        )
        return lambda: repo.append(event, expected_previous_id=latest.id)

    def test_conflict_retried_with_refreshed_snapshot(self):
        repo, handler = _setup()
        handler.handle(_request(10, "5"))
        repo.before_append = self._racing_event(repo)

        dto = handler.handle(_request(-5))

        # Computed against 20 units @ 7, not the stale 10 units @ 5.
        assert dto.previous_event_id == "racer"
        assert dto.qty_on_hand == 15
        assert dto.total_value == "105.00"
        assert ReconciliationChecker(repo).check(KEY).is_consistent

    def test_gives_up_after_max_attempts(self):

        class AlwaysConflicting(FakeCostLayerRepository):
            def append(self, event, expected_previous_id):
                self.append_calls += 1
                raise ConcurrentAppendError(event.key, expected_previous_id, "someone-else")

        repo = AlwaysConflicting()
        handler = RecordMovementHandler(repo, max_attempts=2, clock=lambda: T0)

        with pytest.raises(ConcurrentAppendError, match="someone-else"):
            handler.handle(_request(1, "1"))
        assert repo.append_calls == 2

    def test_stale_snapshot_never_written(self):
        repo, handler = _setup()
        handler.handle(_request(10, "5"))
        repo.before_append = self._racing_event(repo)

        handler.handle(_request(-5))

        chain = [e.previous_event_id for e in repo.list_for_key(KEY)]
        assert chain == [None, "ev-1", "racer"]
