from django.contrib.auth.models import AbstractBaseUser, UserManager
from django.db import models
from django.db.models.signals import post_save
from django.utils.timezone import now as timezone_now
from typing_extensions import override

from chirp.lib.cache import (
    active_user_ids_cache_key,
    cache_with_key,
    flush_user_profile,
    user_profile_by_api_key_cache_key,
    user_profile_by_id_cache_key,
)
from chirp.lib.utils import API_KEY_LENGTH, generate_api_key

MAX_NAME_LENGTH = 100
MAX_USERNAME_LENGTH = 20
USER_CACHE_TIMEOUT = 3600 * 24 * 7


class UserProfile(AbstractBaseUser):
    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = ["username"]

    email = models.EmailField(blank=False, unique=True)
    # Lowercase `\w` characters only; this is what `@username`
    # mentions inside note content are matched against.
    username = models.CharField(max_length=MAX_USERNAME_LENGTH, unique=True)
    full_name = models.CharField(max_length=MAX_NAME_LENGTH)

    date_joined = models.DateTimeField(default=timezone_now)

    # The password of HTTP basic auth on the API.
    api_key = models.CharField(max_length=API_KEY_LENGTH, default=generate_api_key, unique=True)

    # Deactivated users cannot authenticate, and cannot be muted or
    # followed.
    is_active = models.BooleanField(default=True, db_index=True)

    objects = UserManager()

    @override
    def __str__(self) -> str:
        return f"{self.email} (@{self.username})"


post_save.connect(flush_user_profile, sender=UserProfile)


@cache_with_key(user_profile_by_id_cache_key, timeout=USER_CACHE_TIMEOUT)
def get_user_profile_by_id(user_profile_id: int) -> UserProfile:
    return UserProfile.objects.get(id=user_profile_id)


@cache_with_key(user_profile_by_api_key_cache_key, timeout=USER_CACHE_TIMEOUT)
def _user_profile_by_api_key_or_none(api_key: str) -> UserProfile | None:
    # Misses are cached as None too; a misconfigured client retries the
    # same bad key over and over.
    return UserProfile.objects.filter(api_key=api_key).first()


def get_user_profile_by_api_key(api_key: str) -> UserProfile:
    user_profile = _user_profile_by_api_key_or_none(api_key)
    if user_profile is None:
        raise UserProfile.DoesNotExist
    return user_profile


@cache_with_key(active_user_ids_cache_key, timeout=USER_CACHE_TIMEOUT)
def active_user_ids() -> list[int]:
    return list(UserProfile.objects.filter(is_active=True).values_list("id", flat=True))
