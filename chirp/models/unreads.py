from django.db import models
from django.db.models import CASCADE
from typing_extensions import override

from chirp.models.users import UserProfile


class UnreadState(models.Model):
    """Summary flags shown on the user's own profile.

    A flag is only ever turned on by an event that the owner is
    allowed to see; the mark-all-as-read actions turn it off."""

    user_profile = models.OneToOneField(
        UserProfile, related_name="unread_state", on_delete=CASCADE
    )
    has_unread_mentions = models.BooleanField(default=False)
    has_unread_notifications = models.BooleanField(default=False)

    @override
    def __str__(self) -> str:
        return f"{self.user_profile.email} / {self.has_unread_mentions} / {self.has_unread_notifications}"
