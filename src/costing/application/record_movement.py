"""Application service: Record Movement use case.

Validates a movement, computes its snapshot with the incremental
calculator from the key's latest event, and appends the new event.

The append is conditional on the latest event not having changed in the
meantime.  When another writer got there first, the snapshot is
recomputed from the refreshed latest event and the append retried; a
stale snapshot is never written.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from costing.application.dto import CostEventDTO, MovementRequest
from costing.application.mapping import event_to_dto
from costing.domain.exceptions import ConcurrentAppendError, ValidationError
from costing.domain.model.cost_layer import (
    CostingKey,
    CostLayerEvent,
    EventType,
    Movement,
)
from costing.domain.model.value_objects import DEFAULT_CURRENCY
from costing.domain.repository.cost_layer_repository import CostLayerRepository
from costing.domain.service.wac_calculator import apply_event
from costing.logging_config import LogContext, get_logger

logger = get_logger("application.record_movement")

DEFAULT_MAX_APPEND_ATTEMPTS = 3


class RecordMovementHandler:

    def __init__(
        self,
        event_repo: CostLayerRepository,
        max_attempts: int = DEFAULT_MAX_APPEND_ATTEMPTS,
        default_currency: str = DEFAULT_CURRENCY,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._event_repo = event_repo
        self._max_attempts = max_attempts
        self._default_currency = default_currency
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def handle(self, request: MovementRequest) -> CostEventDTO:
        """Record one movement and return the stored event."""
        return event_to_dto(self.record(request))

    def handle_many(self, requests: Iterable[MovementRequest]) -> list[CostEventDTO]:
        """Record movements one after another.

        Each movement sees the snapshot written by the one before it, so
        several lines for the same key are costed in order.
        """
        return [self.handle(request) for request in requests]

    def record(self, request: MovementRequest) -> CostLayerEvent:
        key, event_type, movement, timestamp = self._validate(request)

        with LogContext.bind_key(key, actor_id=request.created_by):
            for attempt in range(1, self._max_attempts + 1):
                latest = self._event_repo.get_latest(key)
                if latest is not None and timestamp < latest.event_timestamp:
                    raise ValidationError(
                        f"Event timestamp {timestamp.isoformat()} is earlier than the "
                        f"latest event for {key} ({latest.event_timestamp.isoformat()})"
                    )

                snapshot = apply_event(
                    key,
                    latest.snapshot if latest is not None else None,
                    movement.qty_delta,
                    movement.unit_cost,
                    movement.landed_cost_delta,
                )
                event = CostLayerEvent(
                    id=self._id_factory(),
                    key=key,
                    event_type=event_type,
                    movement=movement,
                    event_timestamp=timestamp,
                    qty_on_hand_at_event=snapshot.qty_on_hand,
                    wac_at_event=snapshot.wac,
                    total_value_at_event=snapshot.total_value,
                    previous_event_id=snapshot.previous_event_id,
                    source_reference=request.source_reference,
                    created_by=request.created_by,
                    created_at=self._clock(),
                )

                try:
                    stored = self._event_repo.append(
                        event, expected_previous_id=snapshot.previous_event_id
                    )
                except ConcurrentAppendError as exc:
                    if attempt == self._max_attempts:
                        logger.error(
                            "Giving up on %s after %d conflicting appends",
                            key,
                            attempt,
                        )
                        raise
                    logger.warning(
                        "Append conflict on %s, retrying with refreshed snapshot",
                        key,
                        extra={
                            "attempt": attempt,
                            "expected_previous_id": exc.expected_previous_id,
                            "actual_latest_id": exc.actual_latest_id,
                        },
                    )
                    continue

                logger.info(
                    "Recorded %s of %+d on %s",
                    event_type.value,
                    movement.qty_delta,
                    key,
                    extra={
                        "event_id": stored.id,
                        "qty_on_hand": stored.qty_on_hand_at_event,
                        "wac": stored.wac_at_event.amount,
                    },
                )
                return stored

        raise AssertionError("unreachable")

    # --- Validation -----------------------------------------------------------

    def _validate(
        self, request: MovementRequest
    ) -> tuple[CostingKey, EventType, Movement, datetime]:
        key = CostingKey(
            installation_id=request.installation_id,
            item_id=request.item_id,
            location_id=request.location_id,
        )

        try:
            event_type = EventType(request.event_type)
        except ValueError:
            raise ValidationError(
                f"Unknown event type '{request.event_type}'"
            ) from None

        qty = request.qty_delta
        if not isinstance(qty, int) or isinstance(qty, bool):
            raise ValidationError(f"Quantity delta must be an integer, got {qty!r}")
        if qty == 0:
            raise ValidationError("Quantity delta cannot be zero")
        if event_type.is_receipt_type and qty < 0:
            raise ValidationError(f"{event_type.value} requires a positive quantity")
        if event_type.is_issue_type and qty > 0:
            raise ValidationError(f"{event_type.value} requires a negative quantity")

        movement = Movement.of(
            qty,
            request.unit_cost,
            request.landed_cost_delta,
            currency=request.currency or self._default_currency,
        )

        timestamp = request.event_timestamp or self._clock()
        if timestamp.tzinfo is None or timestamp.utcoffset() is None:
            raise ValidationError("Event timestamp must be timezone-aware")

        return key, event_type, movement, timestamp
