"""
WSGI config for the event_security project.

It exposes the WSGI callable as a module-level variable named ``application``.
"""

import os

from django.core.wsgi import get_wsgi_application

# Application servers get the hardened production settings by default. Export
# DJANGO_SETTINGS_MODULE=event_security.settings for a local WSGI server.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "event_security.settings.production")

application = get_wsgi_application()
