"""
AccessRisk analysis configuration
-----------------------------------
AnalysisConfig is validated when it is built, so a bad setting fails the run
before a single event is read.

Recognised options (environment variable in brackets):
  alpha                      [ACCESSRISK_ALPHA]             default 0.95
  anomaly_weight             [ACCESSRISK_ANOMALY_WEIGHT]    default 0.4
  failure_weight             [ACCESSRISK_FAILURE_WEIGHT]    default 0.3
  resource_weight            [ACCESSRISK_RESOURCE_WEIGHT]   default 0.3
  min_buckets_for_detection  [ACCESSRISK_MIN_BUCKETS]       default 4
  top_k_resources            [ACCESSRISK_TOP_K_RESOURCES]   default 5
  timezone                   [ACCESSRISK_TIMEZONE]          default UTC
  seasonal_period            [ACCESSRISK_SEASONAL_PERIOD]   default 24
  iqr_multiplier             [ACCESSRISK_IQR_MULTIPLIER]    default unset (alpha policy)
  max_workers                [ACCESSRISK_MAX_WORKERS]       default 1

Alpha -> IQR multiplier policy
------------------------------
  k = 1.5 * (1 - alpha) / (1 - 0.95)

Monotone decreasing in alpha: alpha=0.95 gives the conventional Tukey fence
k=1.5, alpha -> 1 gives k -> 0 (tighter bounds, more sensitive). Setting
iqr_multiplier replaces the policy with a fixed k.
"""

import math
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from accessrisk.services.shared.errors import ConfigurationError

DEFAULT_ALPHA = 0.95
DEFAULT_IQR_MULTIPLIER = 1.5
WEIGHT_SUM_TOLERANCE = 1e-9

_ENV_KEYS = {
    "alpha":                     ("ACCESSRISK_ALPHA",           float),
    "anomaly_weight":            ("ACCESSRISK_ANOMALY_WEIGHT",  float),
    "failure_weight":            ("ACCESSRISK_FAILURE_WEIGHT",  float),
    "resource_weight":           ("ACCESSRISK_RESOURCE_WEIGHT", float),
    "min_buckets_for_detection": ("ACCESSRISK_MIN_BUCKETS",     int),
    "top_k_resources":           ("ACCESSRISK_TOP_K_RESOURCES", int),
    "timezone":                  ("ACCESSRISK_TIMEZONE",        str),
    "seasonal_period":           ("ACCESSRISK_SEASONAL_PERIOD", int),
    "iqr_multiplier":            ("ACCESSRISK_IQR_MULTIPLIER",  float),
    "max_workers":               ("ACCESSRISK_MAX_WORKERS",     int),
}


def alpha_to_iqr_multiplier(alpha: float) -> float:
    """Map a significance-style alpha in (0, 1) onto the IQR fence multiplier k."""
    return DEFAULT_IQR_MULTIPLIER * (1.0 - alpha) / (1.0 - DEFAULT_ALPHA)


@dataclass(frozen=True)
class AnalysisConfig:
    alpha:                     float           = DEFAULT_ALPHA
    anomaly_weight:            float           = 0.4
    failure_weight:            float           = 0.3
    resource_weight:           float           = 0.3
    min_buckets_for_detection: int             = 4
    top_k_resources:           int             = 5
    timezone:                  str             = "UTC"
    seasonal_period:           int             = 24
    iqr_multiplier:            Optional[float] = None
    max_workers:               int             = 1

    def __post_init__(self) -> None:
        self._validate()

    # ── Validation ────────────────────────────────────────────────────────────

    def _validate(self) -> None:
        if not _is_number(self.alpha) or not 0.0 < self.alpha < 1.0:
            raise ConfigurationError(f"alpha must be in the open interval (0, 1), got {self.alpha!r}")

        weights = {
            "anomaly_weight":  self.anomaly_weight,
            "failure_weight":  self.failure_weight,
            "resource_weight": self.resource_weight,
        }
        for name, value in weights.items():
            if not _is_number(value) or value < 0:
                raise ConfigurationError(f"{name} must be a non-negative number, got {value!r}")
        total = sum(weights.values())
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ConfigurationError(
                "anomaly_weight + failure_weight + resource_weight must sum to 1.0, "
                f"got {total:.6g} ({self.anomaly_weight}/{self.failure_weight}/{self.resource_weight})"
            )

        _require_int(self.min_buckets_for_detection, "min_buckets_for_detection", minimum=2)
        _require_int(self.top_k_resources, "top_k_resources", minimum=1)
        _require_int(self.seasonal_period, "seasonal_period", minimum=2)
        _require_int(self.max_workers, "max_workers", minimum=1)

        if self.iqr_multiplier is not None:
            if not _is_number(self.iqr_multiplier) or self.iqr_multiplier < 0:
                raise ConfigurationError(
                    f"iqr_multiplier must be a non-negative number, got {self.iqr_multiplier!r}"
                )

        try:
            ZoneInfo(str(self.timezone))
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(f"unknown timezone {self.timezone!r}") from exc

    # ── Derived settings ──────────────────────────────────────────────────────

    @property
    def iqr_k(self) -> float:
        if self.iqr_multiplier is not None:
            return float(self.iqr_multiplier)
        return alpha_to_iqr_multiplier(self.alpha)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def weights(self) -> tuple[float, float, float]:
        return (self.anomaly_weight, self.failure_weight, self.resource_weight)

    def with_overrides(self, **overrides: Any) -> "AnalysisConfig":
        """Return a copy with the non-None overrides applied (re-validated)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    # ── Constructors ──────────────────────────────────────────────────────────

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "AnalysisConfig":
        """Build from a plain dict, rejecting keys that are not recognised options."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"unrecognised configuration option(s): {', '.join(unknown)}")
        try:
            return cls(**dict(data))
        except TypeError as exc:
            raise ConfigurationError(str(exc)) from exc

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AnalysisConfig":
        """Build from ACCESSRISK_* environment variables; unset ones keep their default."""
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for name, (var, cast) in _ENV_KEYS.items():
            raw = env.get(var)
            if raw is None or raw == "":
                continue
            try:
                values[name] = cast(raw)
            except ValueError as exc:
                raise ConfigurationError(f"{var}={raw!r} is not a valid {cast.__name__}") from exc
        return cls(**values)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _require_int(value: Any, name: str, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigurationError(f"{name} must be an integer >= {minimum}, got {value!r}")
