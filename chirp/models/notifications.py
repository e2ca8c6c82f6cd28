from django.db import models
from django.db.models import CASCADE
from django.utils.timezone import now as timezone_now
from typing_extensions import override

from chirp.models.notes import MAX_REACTION_LENGTH, Note
from chirp.models.users import UserProfile


class Notification(models.Model):
    MENTION = "mention"
    RENOTE = "renote"
    REACTION = "reaction"
    FOLLOW = "follow"
    NOTIFICATION_TYPES = (
        (MENTION, "Mention"),
        (RENOTE, "Renote"),
        (REACTION, "Reaction"),
        (FOLLOW, "Follow"),
    )

    recipient = models.ForeignKey(UserProfile, related_name="notifications", on_delete=CASCADE)
    # The user whose action produced this notification.  Whether the
    # notification is shown depends on this user, not on the author
    # of `note`.
    notifier = models.ForeignKey(
        UserProfile, null=True, related_name="+", on_delete=CASCADE
    )
    notification_type = models.CharField(choices=NOTIFICATION_TYPES, max_length=16)
    note = models.ForeignKey(Note, null=True, on_delete=CASCADE)
    reaction = models.CharField(max_length=MAX_REACTION_LENGTH, null=True)
    date_created = models.DateTimeField(default=timezone_now, db_index=True)
    is_read = models.BooleanField(default=False)

    @override
    def __str__(self) -> str:
        return f"{self.recipient.email} / {self.notification_type} / {self.id}"
