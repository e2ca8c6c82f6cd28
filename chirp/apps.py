import logging
from typing import Any

import django_stubs_ext
from django.apps import AppConfig
from django.conf import settings
from django.core.cache import cache
from django.db.models.signals import post_migrate
from typing_extensions import override

logger = logging.getLogger("chirp.cache")


def clear_cache_after_migrate(sender: AppConfig, **kwargs: Any) -> None:
    # Cached model instances may not match the migrated tables.
    logger.info("Migrations applied; clearing the cache")
    cache.clear()


class ChirpConfig(AppConfig):
    name = "chirp"
    default_auto_field = "django.db.models.AutoField"

    @override
    def ready(self) -> None:
        # Makes QuerySet[...] and similar annotations subscriptable at
        # runtime.
        django_stubs_ext.monkeypatch()

        # Tests get a fresh key prefix instead.
        if not settings.TEST_SUITE:
            post_migrate.connect(clear_cache_after_migrate, sender=self)
