import logging

from django.db import transaction
from django.utils.timezone import now as timezone_now

from chirp.lib.users import check_username
from chirp.models import UnreadState, UserProfile

logger = logging.getLogger("chirp.users")


@transaction.atomic(durable=True)
def do_create_user(
    email: str,
    username: str,
    full_name: str,
    *,
    password: str | None = None,
) -> UserProfile:
    user_profile = UserProfile(
        email=UserProfile.objects.normalize_email(email),
        username=check_username(username),
        full_name=full_name,
        date_joined=timezone_now(),
    )
    if password is None:
        user_profile.set_unusable_password()
    else:
        user_profile.set_password(password)
    user_profile.save()
    UnreadState.objects.create(user_profile=user_profile)
    logger.info("Created user %s (@%s)", user_profile.email, user_profile.username)
    return user_profile


@transaction.atomic(savepoint=False)
def do_deactivate_user(user_profile: UserProfile) -> None:
    user_profile.is_active = False
    user_profile.save(update_fields=["is_active"])
