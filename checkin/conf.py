"""Typed access to the check-in verifier settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Optional

from django.conf import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifierConfig:
    """Thresholds and timings consumed by the per-frame verifier.

    The defaults are empirically tuned and should only be changed after
    recalibrating against labelled captures.
    """

    quality_floor: float = 75.0
    stability_floor: float = 50.0
    capture_hold_seconds: float = 2.0
    match_threshold: float = 50.0
    ear_threshold: float = 0.3
    blink_min_seconds: float = 0.05
    blink_max_seconds: float = 0.4
    blink_refractory_seconds: float = 1.0
    blink_liveness_bonus: float = 30.0
    real_person_stability: float = 70.0
    glasses_eye_ratio: float = 0.18
    hat_forehead_ratio: float = 0.12
    mask_span_ratio: float = 0.6
    quality_size_multiplier: float = 800.0
    stability_window: int = 10
    stability_min_samples: int = 5
    stability_movement_factor: float = 1.5
    history_size: int = 5
    require_liveness: bool = False
    session_timeout_seconds: Optional[float] = 120.0
    detection_timeout_seconds: Optional[float] = None
    evidence_jpeg_quality: int = 90

    @classmethod
    def from_settings(cls, **overrides: Any) -> "VerifierConfig":
        """Build a config from ``CHECKIN_*`` Django settings."""

        values: dict[str, Any] = {}
        for config_field in fields(cls):
            setting_name = f"CHECKIN_{config_field.name.upper()}"
            if hasattr(settings, setting_name):
                values[config_field.name] = getattr(settings, setting_name)
        values.update(overrides)
        return cls(**values)


__all__ = ["VerifierConfig"]
