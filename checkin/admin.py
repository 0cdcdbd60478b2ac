"""Admin registrations for the check-in app."""

from django.contrib import admin

from .models import FaceEnrollment, VerificationOutcome


@admin.register(VerificationOutcome)
class VerificationOutcomeAdmin(admin.ModelAdmin):
    """Expose persisted verification verdicts for auditing."""

    list_display = (
        "created_at",
        "identity",
        "success",
        "match_score",
        "liveness_score",
        "quality_score",
        "stability_score",
        "is_real_person",
        "source",
    )
    list_filter = ("success", "is_real_person", "had_reference", "source")
    search_fields = ("identity", "source")
    ordering = ("-created_at",)
    readonly_fields = ("created_at",)


@admin.register(FaceEnrollment)
class FaceEnrollmentAdmin(admin.ModelAdmin):
    """List enrolments without ever rendering the encrypted descriptor."""

    list_display = ("identity", "descriptor_length", "source", "updated_at")
    search_fields = ("identity",)
    ordering = ("identity",)
    exclude = ("encrypted_descriptor",)
    readonly_fields = ("descriptor_length", "created_at", "updated_at")
