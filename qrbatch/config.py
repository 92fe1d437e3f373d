"""Settings for the generation pipeline, with environment overrides."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass

from qrbatch.encoder import ECC_NAMES, ECC_RECOVERY, parse_hex_color
from qrbatch.errors import ConfigError
from qrbatch.logging import audit, get_logger

log = get_logger("config")

ENV_PREFIX = "QRBATCH_"
DEFAULT_ARCHIVE_NAME = "qr-codes.zip"

# Warn once the plate uses this share of the ECC recovery capacity
SAFE_ZONE_WARN_FRACTION = 0.75

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def plate_area_fraction(safe_zone_ratio: float, padding_ratio: float) -> float:
    """Share of the canvas area covered by the padded white plate."""
    edge = safe_zone_ratio * (1 + 2 * padding_ratio)
    return edge * edge


def check_safe_zone(safe_zone_ratio: float, padding_ratio: float, ecc: str) -> float:
    """Raise ConfigError when the plate would exceed the ECC recovery budget.

    Returns the fraction of the budget the plate uses.
    """
    ceiling = ECC_RECOVERY[ecc.upper()]
    used = plate_area_fraction(safe_zone_ratio, padding_ratio) / ceiling
    if used >= 1.0:
        raise ConfigError(
            f"safe zone {safe_zone_ratio:.2f} (padding {padding_ratio:.2f}) covers "
            f"{plate_area_fraction(safe_zone_ratio, padding_ratio):.1%} of the code, "
            f"over the {ceiling:.0%} ECC-{ecc.upper()} can recover"
        )
    return used


@dataclass(frozen=True)
class Settings:
    """Pipeline settings. Defaults reproduce the reference output."""

    canvas_size: int = 800
    quiet_margin: int = 2
    ecc: str = "H"
    dark_color: str = "#000000"
    light_color: str = "#FFFFFF"
    safe_zone_ratio: float = 0.20
    safe_zone_padding_ratio: float = 0.10
    entry_timeout: float = 30.0
    allow_partial: bool = False
    verify_scan: bool = False
    max_entries: int = 10
    archive_name: str = DEFAULT_ARCHIVE_NAME

    def __post_init__(self):
        if self.canvas_size <= 0:
            raise ConfigError(f"canvas_size must be positive, got {self.canvas_size}")
        if self.quiet_margin < 0:
            raise ConfigError(f"quiet_margin must be >= 0, got {self.quiet_margin}")
        if self.ecc.upper() not in ECC_NAMES:
            raise ConfigError(f"unknown ECC level {self.ecc!r}, expected one of L/M/Q/H")
        object.__setattr__(self, "ecc", self.ecc.upper())
        parse_hex_color(self.dark_color)
        parse_hex_color(self.light_color)
        for name in ("safe_zone_ratio", "safe_zone_padding_ratio"):
            value = getattr(self, name)
            if not 0 < value < 1:
                raise ConfigError(f"{name} must be between 0 and 1, got {value}")
        if self.entry_timeout < 0:
            raise ConfigError(f"entry_timeout must be >= 0, got {self.entry_timeout}")
        if self.max_entries < 0:
            raise ConfigError(f"max_entries must be >= 0, got {self.max_entries}")
        if not self.archive_name:
            raise ConfigError("archive_name must not be empty")

        used = check_safe_zone(self.safe_zone_ratio, self.safe_zone_padding_ratio, self.ecc)
        if used > SAFE_ZONE_WARN_FRACTION:
            audit("config.safe_zone_tight", logger=log,
                  ecc=self.ecc, budget_pct=f"{used:.0%}",
                  safe_zone_ratio=self.safe_zone_ratio)

    @property
    def timeout_seconds(self) -> float | None:
        """Per-entry timeout, or None when disabled."""
        return self.entry_timeout or None

    def replace(self, **changes) -> "Settings":
        """Return a validated copy with *changes* applied; None values are ignored."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Build settings from ``QRBATCH_*`` variables on top of the defaults."""
        environ = os.environ if environ is None else environ
        values = {}
        for field in dataclasses.fields(cls):
            raw = environ.get(ENV_PREFIX + field.name.upper())
            if raw is None:
                continue
            values[field.name] = _coerce(field.name, field.type, raw)
        return cls(**values)


def _coerce(name: str, type_name: str, raw: str):
    raw = raw.strip()
    try:
        if type_name == "bool":
            lowered = raw.lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError(raw)
        if type_name == "int":
            return int(raw)
        if type_name == "float":
            return float(raw)
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX}{name.upper()}: cannot parse {raw!r} as {type_name}") from None
    return raw
