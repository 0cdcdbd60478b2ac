"""Default settings module: development and test configuration."""

from .base import *  # noqa: F401,F403
