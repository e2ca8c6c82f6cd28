from collections.abc import Sequence
from typing import Any

from chirp.lib.muted_users import access_muted_user_ids
from chirp.lib.notes import build_note_dicts
from chirp.lib.timelines import DEFAULT_TIMELINE_LIMIT, check_limit
from chirp.lib.timestamp import datetime_to_timestamp
from chirp.lib.visibility import is_notification_visible, notification_note_data
from chirp.models import Notification, UserProfile


def notifications_to_dicts(notifications: Sequence[Notification]) -> list[dict[str, Any]]:
    notes = [n.note for n in notifications if n.note is not None]
    note_dicts = {note_dict["id"]: note_dict for note_dict in build_note_dicts(notes)}
    return [
        dict(
            id=notification.id,
            type=notification.notification_type,
            user_id=notification.notifier_id,
            note_id=notification.note_id,
            note=note_dicts.get(notification.note_id) if notification.note_id else None,
            reaction=notification.reaction,
            timestamp=datetime_to_timestamp(notification.date_created),
            is_read=notification.is_read,
        )
        for notification in notifications
    ]


def notification_to_dict(notification: Notification) -> dict[str, Any]:
    return notifications_to_dicts([notification])[0]


def fetch_notifications(
    user_profile: UserProfile,
    *,
    limit: int = DEFAULT_TIMELINE_LIMIT,
    since_id: int | None = None,
    until_id: int | None = None,
) -> list[dict[str, Any]]:
    """The notifications of `user_profile`, newest first, leaving out
    those caused by users `user_profile` has muted.  Whether the
    notification is shown depends on who caused it; a reaction from a
    muted user to one's own note is hidden too."""
    check_limit(limit)
    muted_user_ids = access_muted_user_ids(user_profile.id)

    query = Notification.objects.filter(recipient=user_profile).select_related("note")
    if since_id is not None:
        query = query.filter(id__gt=since_id)
    if muted_user_ids:
        query = query.exclude(notifier_id__in=muted_user_ids)
    query = query.order_by("-id")

    # Mentions can still be rejected below, so fetch in batches until
    # `limit` notifications survive.
    result: list[dict[str, Any]] = []
    while len(result) < limit:
        batch_query = query
        if until_id is not None:
            batch_query = batch_query.filter(id__lt=until_id)
        batch = list(batch_query[:limit])
        if not batch:
            break
        for notification_dict in notifications_to_dicts(batch):
            if is_notification_visible(
                muted_user_ids,
                notification_dict["user_id"],
                notification_note_data(notification_dict),
            ):
                result.append(notification_dict)
                if len(result) == limit:
                    break
        until_id = batch[-1].id
    return result
