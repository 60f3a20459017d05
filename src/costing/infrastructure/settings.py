"""Runtime settings, read from ``COSTING_*`` environment variables."""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, ClassVar

# Repo root when installed in editable mode.
_DEFAULT_DATA_DIR = Path(__file__).resolve().parents[3] / "data"


class ConfigError(Exception):
    """A setting is missing or has an invalid value."""


@dataclasses.dataclass(frozen=True)
class CostingSettings:
    _prefix: ClassVar[str] = "COSTING"

    data_dir: Path = _DEFAULT_DATA_DIR
    max_append_attempts: int = 3
    reconcile_tolerance: Decimal = Decimal("0.0001")
    log_level: str = "INFO"
    default_currency: str = "USD"

    def __post_init__(self) -> None:
        if self.max_append_attempts < 1:
            raise ConfigError("max_append_attempts must be at least 1")
        if not self.reconcile_tolerance.is_finite() or self.reconcile_tolerance < 0:
            raise ConfigError("reconcile_tolerance must be a non-negative number")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"Unknown log level '{self.log_level}'")
        if len(self.default_currency) != 3 or not self.default_currency.isalpha():
            raise ConfigError(
                f"default_currency must be a 3-letter code, got '{self.default_currency}'"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CostingSettings:
        """Build settings from the environment; unset variables keep defaults."""
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}
        for field in dataclasses.fields(cls):
            raw = env.get(f"{cls._prefix}_{field.name}".upper())
            if raw is None or raw == "":
                continue
            kwargs[field.name] = _coerce(field.name, raw, field.type)
        return cls(**kwargs)


def _coerce(name: str, value: str, type_hint: Any) -> Any:
    # Annotations are strings under ``from __future__ import annotations``.
    try:
        if type_hint in (int, "int"):
            return int(value)
        if type_hint in (Decimal, "Decimal"):
            return Decimal(value)
        if type_hint in (Path, "Path"):
            return Path(value).expanduser()
    except (ValueError, InvalidOperation) as exc:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from exc
    return value.strip().upper() if name in ("log_level", "default_currency") else value
