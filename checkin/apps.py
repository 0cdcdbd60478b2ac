"""App configuration for the check-in verifier."""

from django.apps import AppConfig


class CheckinConfig(AppConfig):
    """
    Configuration class for the check-in app.

    The app hosts the on-device biometric verifier together with the models
    that hold enrolled descriptors and persisted verification outcomes.
    """

    name = "checkin"
    verbose_name = "Biometric check-in"
    default_auto_field = "django.db.models.BigAutoField"
