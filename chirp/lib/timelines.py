from collections.abc import Collection
from typing import Any

from django.db.models import Q, QuerySet
from django.utils.translation import gettext as _

from chirp.lib.exceptions import ApiParamValidationError
from chirp.lib.muted_users import access_muted_user_ids
from chirp.lib.notes import build_note_dicts
from chirp.lib.visibility import NoteVisibilityData, is_note_visible
from chirp.models import Following, Note, UserProfile

DEFAULT_TIMELINE_LIMIT = 10
MAX_TIMELINE_LIMIT = 100


def check_limit(limit: int) -> None:
    # The API views validate limit already; internal callers may not.
    if limit < 1:
        raise ApiParamValidationError(_("limit is too small"))
    if limit > MAX_TIMELINE_LIMIT:
        raise ApiParamValidationError(_("limit is too large"))


def exclude_muted_senders(query: QuerySet[Note], muted_user_ids: Collection[int]) -> QuerySet[Note]:
    """Drops notes whose sender, or whose directly renoted note's
    sender, is muted.  Longer renote chains and renotes of deleted
    notes are handled by the is_note_visible pass in
    fetch_visible_notes."""
    if not muted_user_ids:
        return query
    return query.exclude(sender_id__in=muted_user_ids).exclude(
        renote__sender_id__in=muted_user_ids
    )


def fetch_visible_notes(
    user_profile: UserProfile,
    query: QuerySet[Note],
    *,
    limit: int = DEFAULT_TIMELINE_LIMIT,
    since_id: int | None = None,
    until_id: int | None = None,
) -> list[dict[str, Any]]:
    """Returns up to `limit` notes from `query` that `user_profile` may
    see, newest first.

    Rows are fetched in batches, since the visibility pass may reject
    some of the rows the database returned; the order of the rows that
    survive is never changed.
    """
    check_limit(limit)
    muted_user_ids = access_muted_user_ids(user_profile.id)

    if since_id is not None:
        query = query.filter(id__gt=since_id)
    query = exclude_muted_senders(query, muted_user_ids).order_by("-id")

    result: list[dict[str, Any]] = []
    while len(result) < limit:
        batch_query = query
        if until_id is not None:
            batch_query = batch_query.filter(id__lt=until_id)
        batch = list(batch_query[:limit])
        if not batch:
            break
        for note_dict in build_note_dicts(batch):
            if is_note_visible(muted_user_ids, NoteVisibilityData.from_note_dict(note_dict)):
                result.append(note_dict)
                if len(result) == limit:
                    break
        until_id = batch[-1].id
    return result


def fetch_local_timeline(user_profile: UserProfile, **kwargs: Any) -> list[dict[str, Any]]:
    return fetch_visible_notes(user_profile, Note.objects.all(), **kwargs)


def fetch_home_timeline(user_profile: UserProfile, **kwargs: Any) -> list[dict[str, Any]]:
    followee_ids = Following.objects.filter(follower=user_profile).values("followee_id")
    query = Note.objects.filter(Q(sender=user_profile) | Q(sender_id__in=followee_ids))
    return fetch_visible_notes(user_profile, query, **kwargs)


def fetch_mentions(user_profile: UserProfile, **kwargs: Any) -> list[dict[str, Any]]:
    """Notes addressed to `user_profile`.  Being mentioned does not
    make a note from a muted user visible."""
    query = Note.objects.filter(mentioned_users=user_profile)
    return fetch_visible_notes(user_profile, query, **kwargs)
