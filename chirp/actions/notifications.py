from django.db import transaction

from chirp.actions.unreads import do_flag_unread_notification
from chirp.models import Note, Notification, UserProfile


@transaction.atomic(savepoint=False)
def do_create_notification(
    recipient: UserProfile,
    notifier: UserProfile | None,
    notification_type: str,
    *,
    note: Note | None = None,
    reaction: str | None = None,
) -> Notification:
    """Stores the notification and updates the recipient's unread
    state.  The row is stored even when the recipient has muted the
    notifier; it is filtered out wherever notifications are read."""
    notification = Notification.objects.create(
        recipient=recipient,
        notifier=notifier,
        notification_type=notification_type,
        note=note,
        reaction=reaction,
    )
    do_flag_unread_notification(notification)
    return notification
