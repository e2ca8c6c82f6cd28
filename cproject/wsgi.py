"""
WSGI config for the Chirp server.

This module contains the WSGI application used by Django's development server
and any production WSGI deployments. It exposes a module-level variable
named ``application``, which the ``WSGI_APPLICATION`` setting points at.
"""

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "cproject.settings")

from django.core.wsgi import get_wsgi_application

application = get_wsgi_application()
