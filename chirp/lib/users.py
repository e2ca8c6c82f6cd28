import re
from typing import Any

from django.utils.translation import gettext as _

from chirp.lib.exceptions import JsonableError
from chirp.lib.unreads import get_unread_state
from chirp.models import UserProfile, get_user_profile_by_id
from chirp.models.users import MAX_USERNAME_LENGTH

USERNAME_RE = re.compile(rf"\w{{1,{MAX_USERNAME_LENGTH}}}")


def check_username(username: str) -> str:
    username = username.strip().lower()
    if not USERNAME_RE.fullmatch(username):
        raise JsonableError(_("Invalid username"))
    if UserProfile.objects.filter(username=username).exists():
        raise JsonableError(_("Username already in use"))
    return username


def access_user_by_id(
    user_profile: UserProfile,
    target_user_id: int,
    *,
    allow_deactivated: bool = False,
) -> UserProfile:
    """Master function for accessing another user by ID in API code.
    Unknown users and, unless allowed, deactivated users are reported
    the same way, so that callers cannot tell the two apart."""
    try:
        target = get_user_profile_by_id(target_user_id)
    except UserProfile.DoesNotExist:
        raise JsonableError(_("No such user"))
    if not target.is_active and not allow_deactivated:
        raise JsonableError(_("No such user"))
    return target


def get_own_user_dict(user_profile: UserProfile) -> dict[str, Any]:
    result = dict(
        user_id=user_profile.id,
        email=user_profile.email,
        username=user_profile.username,
        full_name=user_profile.full_name,
    )
    result.update(get_unread_state(user_profile))
    return result
