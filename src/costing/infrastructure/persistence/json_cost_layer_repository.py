"""JSON-file-backed implementation of CostLayerRepository.

The whole ledger lives in one file.  Every read parses the file once, so
a caller always sees a consistent snapshot; every append is a
read-check-write under an OS-level lock on a sidecar ``.lock`` file, so
at most one writer is in flight across threads and processes.
Decimals are stored as strings and round-trip exactly.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path

from filelock import FileLock

from costing.domain.exceptions import ConcurrentAppendError, ValidationError
from costing.domain.model.cost_layer import (
    CostingKey,
    CostLayerEvent,
    EventType,
    Movement,
)
from costing.domain.model.value_objects import Money
from costing.domain.repository.cost_layer_repository import CostLayerRepository


class JsonCostLayerRepository(CostLayerRepository):

    def __init__(self, file_path: Path, lock_timeout: float = 30.0) -> None:
        self._file_path = file_path.resolve()
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = FileLock(
            str(self._file_path.with_name(self._file_path.name + ".lock")),
            timeout=lock_timeout,
        )
        self._ensure_file()

    # --- CostLayerRepository interface ----------------------------------------

    def get_latest(self, key: CostingKey) -> CostLayerEvent | None:
        events = self.list_for_key(key)
        return events[-1] if events else None

    def list_for_key(self, key: CostingKey) -> list[CostLayerEvent]:
        events = [
            self._to_domain(raw)
            for raw in self._load_raw()
            if self._raw_key(raw) == key
        ]
        return sorted(events, key=lambda e: e.ordering)

    def get_by_id(self, event_id: str) -> CostLayerEvent | None:
        for raw in self._load_raw():
            if raw["id"] == event_id:
                return self._to_domain(raw)
        return None

    def list_keys(self) -> list[CostingKey]:
        keys = {self._raw_key(raw) for raw in self._load_raw()}
        return sorted(keys)

    def append(
        self,
        event: CostLayerEvent,
        expected_previous_id: str | None,
    ) -> CostLayerEvent:
        with self._lock:
            records = self._load_raw()
            if any(raw["id"] == event.id for raw in records):
                raise ValidationError(f"Event {event.id} already exists")

            latest = self._latest_raw(records, event.key)
            latest_id = latest["id"] if latest is not None else None
            if latest_id != expected_previous_id:
                raise ConcurrentAppendError(event.key, expected_previous_id, latest_id)

            sequence = max((raw["sequence"] for raw in records), default=0) + 1
            stored = replace(event, sequence=sequence)
            records.append(self._to_raw(stored))
            self._persist_raw(records)
            return stored

    # --- Serialization --------------------------------------------------------

    @staticmethod
    def _raw_key(raw: dict) -> CostingKey:
        return CostingKey(
            installation_id=raw["installation_id"],
            item_id=raw["item_id"],
            location_id=raw["location_id"],
        )

    def _latest_raw(self, records: list[dict], key: CostingKey) -> dict | None:
        candidates = [raw for raw in records if self._raw_key(raw) == key]
        if not candidates:
            return None
        return max(
            candidates,
            key=lambda raw: (datetime.fromisoformat(raw["event_timestamp"]), raw["sequence"]),
        )

    @staticmethod
    def _to_raw(event: CostLayerEvent) -> dict:
        return {
            "id": event.id,
            "sequence": event.sequence,
            "installation_id": event.key.installation_id,
            "item_id": event.key.item_id,
            "location_id": event.key.location_id,
            "event_type": event.event_type.value,
            "qty_delta": event.qty_delta,
            "unit_cost": str(event.unit_cost.amount),
            "landed_cost_delta": str(event.landed_cost_delta.amount),
            "currency": event.currency,
            "event_timestamp": event.event_timestamp.isoformat(),
            "qty_on_hand_at_event": event.qty_on_hand_at_event,
            "wac_at_event": str(event.wac_at_event.amount),
            "total_value_at_event": str(event.total_value_at_event.amount),
            "previous_event_id": event.previous_event_id,
            "source_reference": event.source_reference,
            "created_by": event.created_by,
            "created_at": event.created_at.isoformat(),
        }

    @classmethod
    def _to_domain(cls, raw: dict) -> CostLayerEvent:
        try:
            return cls._decode(raw)
        except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
            raise ValidationError(
                f"Stored event {raw.get('id', '?')} is malformed: {exc!r}"
            ) from exc

    @classmethod
    def _decode(cls, raw: dict) -> CostLayerEvent:
        currency = raw.get("currency", "USD")
        return CostLayerEvent(
            id=raw["id"],
            key=cls._raw_key(raw),
            event_type=EventType(raw["event_type"]),
            movement=Movement(
                qty_delta=raw["qty_delta"],
                unit_cost=Money(Decimal(raw["unit_cost"]), currency),
                landed_cost_delta=Money(Decimal(raw.get("landed_cost_delta", "0")), currency),
            ),
            event_timestamp=datetime.fromisoformat(raw["event_timestamp"]),
            qty_on_hand_at_event=raw["qty_on_hand_at_event"],
            wac_at_event=Money(Decimal(raw["wac_at_event"]), currency),
            total_value_at_event=Money(Decimal(raw["total_value_at_event"]), currency),
            previous_event_id=raw.get("previous_event_id"),
            sequence=raw["sequence"],
            source_reference=raw.get("source_reference"),
            created_by=raw.get("created_by"),
            created_at=datetime.fromisoformat(raw["created_at"]),
        )

    # --- File helpers ---------------------------------------------------------

    def _load_raw(self) -> list[dict]:
        return json.loads(self._file_path.read_text(encoding="utf-8"))

    def _persist_raw(self, records: list[dict]) -> None:
        # Write-then-rename so readers never see a half-written file.
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self._file_path.parent,
            prefix=self._file_path.name + ".",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            json.dump(records, tmp, indent=2)
            tmp.write("\n")
        try:
            os.replace(tmp.name, self._file_path)
        except OSError:
            os.unlink(tmp.name)
            raise

    def _ensure_file(self) -> None:
        with self._lock:
            if not self._file_path.exists():
                self._persist_raw([])
