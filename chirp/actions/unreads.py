from typing import Any

from django.db import transaction

from chirp.lib.notifications import notification_to_dict
from chirp.lib.visibility import note_is_visible_to_user, notification_is_visible_to_user
from chirp.models import Notification, UnreadState, UserProfile
from chirp.tornado.django_api import send_event_on_commit


@transaction.atomic(savepoint=False)
def do_flag_unread_mention(user_profile_id: int, note_dict: dict[str, Any]) -> bool:
    """Called for each user mentioned in a new note.  Nothing happens
    unless the note is visible to that user: a mention from a muted
    user neither sets the flag nor produces events."""
    if not note_is_visible_to_user(user_profile_id, note_dict):
        return False

    UnreadState.objects.filter(
        user_profile_id=user_profile_id, has_unread_mentions=False
    ).update(has_unread_mentions=True)

    send_event_on_commit(dict(type="mention", note=note_dict), [user_profile_id])
    send_event_on_commit(
        dict(type="unread_mention", note_id=note_dict["id"], note=note_dict), [user_profile_id]
    )
    return True


@transaction.atomic(savepoint=False)
def do_flag_unread_notification(notification: Notification) -> bool:
    notification_dict = notification_to_dict(notification)
    if not notification_is_visible_to_user(notification.recipient_id, notification_dict):
        return False

    UnreadState.objects.filter(
        user_profile_id=notification.recipient_id, has_unread_notifications=False
    ).update(has_unread_notifications=True)

    send_event_on_commit(
        dict(type="notification", notification=notification_dict), [notification.recipient_id]
    )
    send_event_on_commit(
        dict(
            type="unread_notification",
            notification_id=notification.id,
            notification=notification_dict,
        ),
        [notification.recipient_id],
    )
    return True


@transaction.atomic(durable=True)
def do_mark_all_mentions_as_read(user_profile: UserProfile) -> None:
    UnreadState.objects.filter(user_profile=user_profile).update(has_unread_mentions=False)
    send_event_on_commit(dict(type="read_all_unread_mentions"), [user_profile.id])


@transaction.atomic(durable=True)
def do_mark_all_notifications_as_read(user_profile: UserProfile) -> int:
    count = Notification.objects.filter(recipient=user_profile, is_read=False).update(
        is_read=True
    )
    UnreadState.objects.filter(user_profile=user_profile).update(has_unread_notifications=False)
    send_event_on_commit(dict(type="read_all_notifications"), [user_profile.id])
    return count
