import datetime
import logging
from collections import defaultdict
from collections.abc import Sequence

from django.db import DatabaseError

from chirp.lib.cache import bulk_cached_fetch, cache_with_key, get_muted_user_ids_cache_key
from chirp.lib.exceptions import MuteStateUnavailableError
from chirp.lib.timestamp import datetime_to_timestamp
from chirp.models import MutedUser, UserProfile

logger = logging.getLogger("chirp.muted_users")

MUTED_USER_IDS_CACHE_TIMEOUT = 3600 * 24 * 7


def get_user_mutes(user_profile: UserProfile) -> list[dict[str, int]]:
    rows = (
        MutedUser.objects.filter(user_profile=user_profile)
        .values(
            "muted_user_id",
            "date_muted",
        )
        .order_by("id")
    )
    return [
        {
            "id": row["muted_user_id"],
            "timestamp": datetime_to_timestamp(row["date_muted"]),
        }
        for row in rows
    ]


def add_user_mute(
    user_profile: UserProfile, muted_user: UserProfile, date_muted: datetime.datetime
) -> bool:
    """Returns whether a new mute was created; muting an already
    muted user leaves the existing row alone."""
    mute_object, created = MutedUser.objects.get_or_create(
        user_profile=user_profile,
        muted_user=muted_user,
        defaults={"date_muted": date_muted},
    )
    return created


def get_mute_object(user_profile: UserProfile, muted_user: UserProfile) -> MutedUser | None:
    try:
        return MutedUser.objects.get(user_profile=user_profile, muted_user=muted_user)
    except MutedUser.DoesNotExist:
        return None


@cache_with_key(get_muted_user_ids_cache_key, timeout=MUTED_USER_IDS_CACHE_TIMEOUT)
def get_muted_user_ids(user_profile_id: int) -> frozenset[int]:
    """
    The set of users muted by `user_profile_id`.  Every visibility
    decision made for this user (queries, unread flags, and the event
    queue) is computed against this set.
    """
    rows = MutedUser.objects.filter(
        user_profile_id=user_profile_id,
    ).values_list("muted_user_id", flat=True)
    return frozenset(rows)


def user_is_muted(user_profile_id: int, muted_user_id: int) -> bool:
    return muted_user_id in get_muted_user_ids(user_profile_id)


def bulk_get_muted_user_ids(user_profile_ids: Sequence[int]) -> dict[int, frozenset[int]]:
    """get_muted_user_ids for many users, with one query for all of
    the users whose set is not cached yet.  Fills the same cache
    entries that get_muted_user_ids reads."""

    def query_function(needed_ids: list[int]) -> list[tuple[int, frozenset[int]]]:
        muted_by_user: dict[int, set[int]] = defaultdict(set)
        rows = MutedUser.objects.filter(user_profile_id__in=needed_ids).values_list(
            "user_profile_id", "muted_user_id"
        )
        for user_profile_id, muted_user_id in rows:
            muted_by_user[user_profile_id].add(muted_user_id)
        # Users without any mutes are cached too.
        return [(user_id, frozenset(muted_by_user[user_id])) for user_id in needed_ids]

    return bulk_cached_fetch(
        get_muted_user_ids_cache_key,
        query_function,
        user_profile_ids,
        id_fetcher=lambda row: row[0],
        cache_transformer=lambda row: row[1],
        timeout=MUTED_USER_IDS_CACHE_TIMEOUT,
    )


def access_muted_user_ids(user_profile_id: int) -> frozenset[int]:
    """Like get_muted_user_ids, but a failure to read the mute state is
    reported as MuteStateUnavailableError.  Callers must never fall
    back to an empty set, since that would show muted content."""
    try:
        return get_muted_user_ids(user_profile_id)
    except DatabaseError as e:
        logger.warning("Could not read mutes for user %s: %s", user_profile_id, e)
        raise MuteStateUnavailableError from e
