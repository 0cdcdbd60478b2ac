"""Database models for the check-in app."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

import numpy as np
from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from .crypto import decrypt_descriptor, encrypt_descriptor

logger = logging.getLogger(__name__)

_score_validators = [MinValueValidator(0.0), MaxValueValidator(100.0)]


class FaceEnrollment(models.Model):
    """Reference descriptor enrolled once per identity, stored encrypted."""

    identity = models.CharField(max_length=150, unique=True)
    encrypted_descriptor = models.BinaryField()
    descriptor_length = models.PositiveIntegerField(default=128)
    source = models.CharField(max_length=32, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["identity"]
        verbose_name = "Face Enrollment"
        verbose_name_plural = "Face Enrollments"

    def __str__(self) -> str:
        return f"{self.identity} ({self.descriptor_length}-d)"

    def set_descriptor(self, descriptor: np.ndarray) -> None:
        vector = np.asarray(descriptor, dtype=np.float64).ravel()
        self.encrypted_descriptor = encrypt_descriptor(vector)
        self.descriptor_length = int(vector.size)

    def get_descriptor(self) -> np.ndarray:
        return decrypt_descriptor(bytes(self.encrypted_descriptor))

    @classmethod
    def enroll(cls, identity: str, descriptor: np.ndarray, *, source: str = "") -> "FaceEnrollment":
        """Create or replace the enrolment for ``identity``."""

        enrollment = cls.objects.filter(identity=identity).first() or cls(identity=identity)
        enrollment.set_descriptor(descriptor)
        enrollment.source = source
        enrollment.save()

        from .reference_store import DatabaseReferenceStore

        DatabaseReferenceStore().invalidate(identity)
        logger.info(
            "Face enrolled", extra={"event": "face_enrolled", "identity": identity, "source": source}
        )
        return enrollment


class VerificationOutcomeQuerySet(models.QuerySet["VerificationOutcome"]):
    def successful(self) -> "VerificationOutcomeQuerySet":
        return self.filter(success=True)

    def failed(self) -> "VerificationOutcomeQuerySet":
        return self.filter(success=False)


class VerificationOutcome(models.Model):
    """Persisted capture verdict kept for auditing check-ins."""

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    identity = models.CharField(max_length=150, blank=True)
    source = models.CharField(max_length=32, blank=True)
    success = models.BooleanField()
    match_score = models.FloatField(validators=_score_validators)
    liveness_score = models.FloatField(validators=_score_validators)
    quality_score = models.FloatField(validators=_score_validators)
    stability_score = models.FloatField(validators=_score_validators)
    is_real_person = models.BooleanField(default=False)
    had_reference = models.BooleanField(default=True)

    objects: VerificationOutcomeQuerySet = VerificationOutcomeQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["identity", "created_at"], name="checkin_ver_identit_6a1f2e_idx"),
            models.Index(fields=["success", "created_at"], name="checkin_ver_success_3b9c4d_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover - human readability
        status = "verified" if self.success else "rejected"
        identity = self.identity or "unknown"
        return f"{identity} {status} @ {self.created_at:%Y-%m-%d %H:%M:%S}"

    @classmethod
    def from_attempt(
        cls,
        attempt,
        *,
        identity: str = "",
        source: str = "",
        had_reference: bool = True,
    ) -> "VerificationOutcome":
        return cls.objects.create(
            identity=identity,
            source=source,
            success=attempt.success,
            match_score=attempt.match_score,
            liveness_score=attempt.liveness_score,
            quality_score=attempt.quality_score,
            stability_score=attempt.stability_score,
            is_real_person=attempt.is_real_person,
            had_reference=had_reference,
        )

    @classmethod
    def prune_expired(cls) -> int:
        """Delete outcomes older than the configured retention window."""

        retention_days: Optional[int] = getattr(settings, "CHECKIN_OUTCOME_RETENTION_DAYS", 30)
        if retention_days in (None, "none", ""):
            return 0

        try:
            days = int(retention_days)
        except (TypeError, ValueError):
            logger.debug("Invalid CHECKIN_OUTCOME_RETENTION_DAYS=%r; skipping prune.", retention_days)
            return 0

        if days <= 0:
            logger.debug("Retention set to %s days; skipping prune.", days)
            return 0

        cutoff = timezone.now() - timedelta(days=days)
        deleted, _ = cls.objects.filter(created_at__lt=cutoff).delete()
        return deleted
