"""
Django settings for the event-security check-in verifier.

Sensitive values and verifier thresholds are read from environment
variables through the typed helpers below, which raise
``ImproperlyConfigured`` on malformed input.
"""

import json
import os
import sys
import warnings
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from django.core.exceptions import ImproperlyConfigured

import dj_database_url
from cryptography.fernet import Fernet

BASE_DIR = Path(__file__).resolve().parent.parent.parent
LOCAL_ENV_PATH = Path(os.environ.get("LOCAL_ENV_PATH", BASE_DIR / ".env"))
DEV_KEY_CACHE_PATH = Path(
    os.environ.get("DEV_ENCRYPTION_KEY_FILE", BASE_DIR / ".dev_encryption_keys.json")
)


# --- Environment helpers ---


def _get_bool_env(var_name: str, default: bool = False) -> bool:
    """Return a boolean from an environment variable."""

    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default
    return raw_value.lower() in {"1", "true", "yes", "on"}


def _parse_int_env(var_name: str, default: int, *, minimum: int | None = None) -> int:
    """Return an integer from the environment, enforcing an optional minimum."""

    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default

    try:
        value = int(raw_value)
    except ValueError as exc:
        raise ImproperlyConfigured(f"{var_name} must be an integer if provided.") from exc

    if minimum is not None and value < minimum:
        raise ImproperlyConfigured(f"{var_name} must be >= {minimum} if provided.")

    return value


def _get_float_env(
    var_name: str,
    default: float,
    *,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    """Return a float from the environment with optional bounds enforcement."""

    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default

    try:
        value = float(raw_value)
    except ValueError as exc:
        raise ImproperlyConfigured(f"{var_name} must be a float if provided.") from exc

    if minimum is not None and value < minimum:
        raise ImproperlyConfigured(f"{var_name} must be >= {minimum} if provided.")
    if maximum is not None and value > maximum:
        raise ImproperlyConfigured(f"{var_name} must be <= {maximum} if provided.")

    return value


def _get_optional_float_env(var_name: str, default: float | None) -> float | None:
    """Return a positive float, or ``None`` when the variable is ``none``/``0``."""

    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default
    if raw_value.strip().lower() in {"", "none", "off", "0"}:
        return None
    return _get_float_env(var_name, 0.0, minimum=0.0)


# Detect if we're running tests
TESTING = "test" in sys.argv or (len(sys.argv) > 0 and "pytest" in sys.argv[0])

DEFAULT_SECRET_KEY = "a-secure-default-key-for-development-only"

# Automatically enable DEBUG mode when running tests.
DEBUG = _get_bool_env("DJANGO_DEBUG", default=TESTING)

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", DEFAULT_SECRET_KEY)
if SECRET_KEY == DEFAULT_SECRET_KEY and not DEBUG:
    raise ImproperlyConfigured(
        "DJANGO_SECRET_KEY must be set to a secure value when DJANGO_DEBUG is not enabled."
    )


# --- Descriptor encryption key ---


def _validate_fernet_key(key: str | bytes, setting_name: str) -> bytes:
    """Ensure the provided key material is a valid Fernet key."""

    key_bytes = key.encode() if isinstance(key, str) else key
    try:
        Fernet(key_bytes)
    except (ValueError, TypeError) as exc:
        raise ImproperlyConfigured(
            f"{setting_name} must be a valid 32-byte base64-encoded Fernet key."
        ) from exc
    return key_bytes


def _read_local_env_value(var_name: str) -> str | None:
    """Return a value from a local ``.env`` file if present."""

    if not LOCAL_ENV_PATH.exists():
        return None

    try:
        for raw_line in LOCAL_ENV_PATH.read_text().splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            if key.strip() != var_name:
                continue
            return value.strip().strip("\"").strip("'")
    except OSError as exc:
        warnings.warn(f"Unable to read {LOCAL_ENV_PATH}: {exc}")

    return None


def _load_cached_dev_key(var_name: str) -> bytes | None:
    """Load a previously generated development key from disk."""

    if not DEV_KEY_CACHE_PATH.exists():
        return None

    try:
        cache = json.loads(DEV_KEY_CACHE_PATH.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        warnings.warn(f"Ignoring invalid dev key cache file: {exc}")
        return None

    cached_value = cache.get(var_name)
    if not cached_value:
        return None

    try:
        return _validate_fernet_key(cached_value, var_name)
    except ImproperlyConfigured:
        warnings.warn(f"Ignoring invalid cached {var_name}; regenerating.")
        return None


def _persist_dev_key(var_name: str, key: bytes) -> None:
    """Persist generated development keys so enrolments survive restarts."""

    try:
        existing = (
            json.loads(DEV_KEY_CACHE_PATH.read_text()) if DEV_KEY_CACHE_PATH.exists() else {}
        )
    except (OSError, json.JSONDecodeError):
        existing = {}

    existing[var_name] = key.decode()

    try:
        DEV_KEY_CACHE_PATH.write_text(json.dumps(existing, indent=2))
    except OSError as exc:
        warnings.warn(f"Unable to persist dev encryption key cache: {exc}")


def _load_face_data_encryption_key() -> bytes:
    """Load the Fernet key used to encrypt enrolled face descriptors."""

    key = os.environ.get("FACE_DATA_ENCRYPTION_KEY")
    if not key and (DEBUG or TESTING):
        key = _read_local_env_value("FACE_DATA_ENCRYPTION_KEY")
    if key:
        return _validate_fernet_key(key, "FACE_DATA_ENCRYPTION_KEY")

    if DEBUG or TESTING:
        cached_key = _load_cached_dev_key("FACE_DATA_ENCRYPTION_KEY")
        if cached_key:
            return cached_key
        generated = Fernet.generate_key()
        _persist_dev_key("FACE_DATA_ENCRYPTION_KEY", generated)
        return generated

    raise ImproperlyConfigured(
        "FACE_DATA_ENCRYPTION_KEY environment variable must be set in production environments."
    )


FACE_DATA_ENCRYPTION_KEY = _load_face_data_encryption_key()


# --- Hosts and transport security ---

LOCALHOST_ALIASES: tuple[str, ...] = ("localhost", "127.0.0.1", "[::1]")


def _resolve_allowed_hosts(
    *,
    default_allowed_hosts: Sequence[str],
    require_explicit_hosts: bool,
) -> list[str]:
    """Return the allowed host list based on deployment defaults."""

    allowed_hosts_env = os.environ.get("DJANGO_ALLOWED_HOSTS")
    if allowed_hosts_env:
        return [host.strip() for host in allowed_hosts_env.split(",") if host.strip()]

    if require_explicit_hosts:
        raise ImproperlyConfigured(
            "DJANGO_ALLOWED_HOSTS must be provided (comma separated) when secure defaults are enforced."
        )

    return list(default_allowed_hosts)


def configure_environment(
    *,
    secure_defaults: bool,
    default_allowed_hosts: Sequence[str],
    require_allowed_hosts: bool,
) -> None:
    """Populate security-sensitive settings for the active environment."""

    global ALLOWED_HOSTS
    global SECURE_SSL_REDIRECT
    global SECURE_HSTS_SECONDS
    global SESSION_COOKIE_SECURE
    global CSRF_COOKIE_SECURE

    ALLOWED_HOSTS = _resolve_allowed_hosts(
        default_allowed_hosts=default_allowed_hosts,
        require_explicit_hosts=require_allowed_hosts,
    )
    SECURE_SSL_REDIRECT = _get_bool_env("DJANGO_SECURE_SSL_REDIRECT", default=secure_defaults)
    SECURE_HSTS_SECONDS = _parse_int_env(
        "DJANGO_SECURE_HSTS_SECONDS",
        default=3600 if secure_defaults else 0,
        minimum=0,
    )
    SESSION_COOKIE_SECURE = _get_bool_env("DJANGO_SESSION_COOKIE_SECURE", default=secure_defaults)
    CSRF_COOKIE_SECURE = _get_bool_env("DJANGO_CSRF_COOKIE_SECURE", default=secure_defaults)


# --- Application Configuration ---

INSTALLED_APPS = [
    "checkin.apps.CheckinConfig",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "event_security.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "event_security.wsgi.application"


# --- Database Configuration ---

default_db_url = os.environ.get("DATABASE_URL", f"sqlite:///{(BASE_DIR / 'db.sqlite3').as_posix()}")

DATABASES = {
    "default": dj_database_url.parse(
        default_db_url,
        conn_max_age=_parse_int_env("DATABASE_CONN_MAX_AGE", 0, minimum=0),
    ),
}


def build_postgres_database_config() -> dict[str, Any]:
    """Return a PostgreSQL configuration derived from discrete environment variables."""

    return {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.environ.get("DB_NAME", "event_security"),
        "USER": os.environ.get("DB_USER", "event_security"),
        "PASSWORD": os.environ.get("DB_PASSWORD", "event_security"),
        "HOST": os.environ.get("DB_HOST", "localhost"),
        "PORT": os.environ.get("DB_PORT", "5432"),
        "CONN_MAX_AGE": _parse_int_env("DB_CONN_MAX_AGE", 600, minimum=0),
    }


configure_environment(
    secure_defaults=not DEBUG,
    default_allowed_hosts=LOCALHOST_ALIASES,
    require_allowed_hosts=not DEBUG,
)


# --- Cache Configuration ---
# Reference descriptors are cached in the "checkin" alias. LocMemCache is
# per-process; point CHECKIN_CACHE_URL-style deployments at a shared backend.
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "event-security-default",
    },
    "checkin": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "event-security-checkin",
    },
}


# --- Internationalization ---

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("DJANGO_TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True


# --- Static Files ---

STATIC_URL = "/static/"
STATIC_ROOT = Path(os.environ.get("DJANGO_STATIC_ROOT", BASE_DIR / "staticfiles"))

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# --- Logging ---

CHECKIN_LOG_LEVEL = os.environ.get("CHECKIN_LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "checkin": {
            "handlers": ["console"],
            "level": CHECKIN_LOG_LEVEL,
            "propagate": True,
        },
    },
}


# --- Check-in verifier ---
# Thresholds are empirically tuned; recalibrate against labelled captures
# before changing them.

CHECKIN_QUALITY_FLOOR = _get_float_env("CHECKIN_QUALITY_FLOOR", 75.0, minimum=0.0, maximum=100.0)
CHECKIN_STABILITY_FLOOR = _get_float_env(
    "CHECKIN_STABILITY_FLOOR", 50.0, minimum=0.0, maximum=100.0
)
CHECKIN_CAPTURE_HOLD_SECONDS = _get_float_env("CHECKIN_CAPTURE_HOLD_SECONDS", 2.0, minimum=0.0)
CHECKIN_MATCH_THRESHOLD = _get_float_env(
    "CHECKIN_MATCH_THRESHOLD", 50.0, minimum=0.0, maximum=100.0
)
CHECKIN_EAR_THRESHOLD = _get_float_env("CHECKIN_EAR_THRESHOLD", 0.3, minimum=0.0)
CHECKIN_BLINK_MIN_SECONDS = _get_float_env("CHECKIN_BLINK_MIN_SECONDS", 0.05, minimum=0.0)
CHECKIN_BLINK_MAX_SECONDS = _get_float_env("CHECKIN_BLINK_MAX_SECONDS", 0.4, minimum=0.0)
if CHECKIN_BLINK_MAX_SECONDS <= CHECKIN_BLINK_MIN_SECONDS:
    raise ImproperlyConfigured("CHECKIN_BLINK_MAX_SECONDS must exceed CHECKIN_BLINK_MIN_SECONDS.")
CHECKIN_BLINK_REFRACTORY_SECONDS = _get_float_env(
    "CHECKIN_BLINK_REFRACTORY_SECONDS", 1.0, minimum=0.0
)
CHECKIN_GLASSES_EYE_RATIO = _get_float_env("CHECKIN_GLASSES_EYE_RATIO", 0.18, minimum=0.0)
CHECKIN_STABILITY_WINDOW = _parse_int_env("CHECKIN_STABILITY_WINDOW", 10, minimum=2)
CHECKIN_STABILITY_MIN_SAMPLES = _parse_int_env("CHECKIN_STABILITY_MIN_SAMPLES", 5, minimum=2)
CHECKIN_HISTORY_SIZE = _parse_int_env("CHECKIN_HISTORY_SIZE", 5, minimum=1)
CHECKIN_REQUIRE_LIVENESS = _get_bool_env("CHECKIN_REQUIRE_LIVENESS", default=False)
CHECKIN_SESSION_TIMEOUT_SECONDS = _get_optional_float_env("CHECKIN_SESSION_TIMEOUT_SECONDS", 120.0)
CHECKIN_DETECTION_TIMEOUT_SECONDS = _get_optional_float_env(
    "CHECKIN_DETECTION_TIMEOUT_SECONDS", None
)
CHECKIN_EVIDENCE_JPEG_QUALITY = _parse_int_env("CHECKIN_EVIDENCE_JPEG_QUALITY", 90, minimum=1)

CHECKIN_PRIMARY_DETECTOR = os.environ.get("CHECKIN_PRIMARY_DETECTOR", "ssd")
CHECKIN_PRIMARY_MIN_CONFIDENCE = _get_float_env(
    "CHECKIN_PRIMARY_MIN_CONFIDENCE", 0.5, minimum=0.0, maximum=1.0
)
CHECKIN_FALLBACK_DETECTOR = os.environ.get("CHECKIN_FALLBACK_DETECTOR", "opencv")
CHECKIN_FALLBACK_MIN_CONFIDENCE = _get_float_env(
    "CHECKIN_FALLBACK_MIN_CONFIDENCE", 0.4, minimum=0.0, maximum=1.0
)

CHECKIN_CAMERA_SOURCE = _parse_int_env("CHECKIN_CAMERA_SOURCE", 0, minimum=0)
CHECKIN_CAMERA_WARMUP_SECONDS = _get_float_env("CHECKIN_CAMERA_WARMUP_SECONDS", 2.0, minimum=0.0)

CHECKIN_REFERENCE_CACHE_TTL = _parse_int_env("CHECKIN_REFERENCE_CACHE_TTL", 300, minimum=0)
CHECKIN_OUTCOME_RETENTION_DAYS = _parse_int_env("CHECKIN_OUTCOME_RETENTION_DAYS", 30, minimum=0)

CHECKIN_CAMERA_START_ALERT_SECONDS = _get_float_env(
    "CHECKIN_CAMERA_START_ALERT_SECONDS", 3.0, minimum=0.0
)
CHECKIN_FRAME_DELAY_ALERT_SECONDS = _get_float_env(
    "CHECKIN_FRAME_DELAY_ALERT_SECONDS", 0.75, minimum=0.0
)
CHECKIN_FRAME_PROCESSING_ALERT_SECONDS = _get_float_env(
    "CHECKIN_FRAME_PROCESSING_ALERT_SECONDS", 0.5, minimum=0.0
)
CHECKIN_HEALTH_ALERT_HISTORY = _parse_int_env("CHECKIN_HEALTH_ALERT_HISTORY", 50, minimum=1)
