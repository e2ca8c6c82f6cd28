import logging
from datetime import datetime

from django.db import transaction
from django.utils.timezone import now as timezone_now

from chirp.lib.cache import flush_muted_users_cache
from chirp.lib.exceptions import CannotMuteSelfError
from chirp.lib.muted_users import add_user_mute, get_mute_object, get_user_mutes
from chirp.models import MutedUser, UserProfile
from chirp.tornado.django_api import send_event_on_commit

logger = logging.getLogger("chirp.muted_users")


def flush_mute_on_commit(mute_object: MutedUser) -> None:
    # The post_save/post_delete signals already flushed the cached mute
    # sets, but a concurrent request may have refilled them from a
    # snapshot that predates our commit.
    transaction.on_commit(lambda: flush_muted_users_cache(instance=mute_object))


@transaction.atomic(durable=True)
def do_mute_user(
    user_profile: UserProfile,
    muted_user: UserProfile,
    date_muted: datetime | None = None,
) -> bool:
    """Returns whether a new mute was created.  Muting an already muted
    user is not an error and changes nothing."""
    if user_profile.id == muted_user.id:
        raise CannotMuteSelfError
    if date_muted is None:
        date_muted = timezone_now()
    created = add_user_mute(user_profile, muted_user, date_muted)
    if not created:
        return False

    mute_object = get_mute_object(user_profile, muted_user)
    assert mute_object is not None
    flush_mute_on_commit(mute_object)
    event = dict(type="muted_users", muted_users=get_user_mutes(user_profile))
    send_event_on_commit(event, [user_profile.id])
    logger.info("%s muted user %s", user_profile.email, muted_user.id)
    return True


@transaction.atomic(durable=True)
def do_unmute_user(user_profile: UserProfile, muted_user: UserProfile) -> bool:
    mute_object = get_mute_object(user_profile, muted_user)
    if mute_object is None:
        return False

    mute_object.delete()
    flush_mute_on_commit(mute_object)
    event = dict(type="muted_users", muted_users=get_user_mutes(user_profile))
    send_event_on_commit(event, [user_profile.id])
    logger.info("%s unmuted user %s", user_profile.email, muted_user.id)
    return True
