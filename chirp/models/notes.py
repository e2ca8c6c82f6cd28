from django.db import models
from django.db.models import CASCADE, DO_NOTHING
from django.utils.timezone import now as timezone_now
from typing_extensions import override

from chirp.models.users import UserProfile

MAX_NOTE_LENGTH = 3000
MAX_REACTION_LENGTH = 32


class Note(models.Model):
    sender = models.ForeignKey(UserProfile, related_name="notes", on_delete=CASCADE)

    # Raw text, as typed by the sender.  Empty only for a pure renote.
    content = models.TextField(blank=True)

    # A renote is a repost of another note.  The reference is kept
    # without a database constraint, so deleting the renoted note
    # leaves renote_id pointing at a row that no longer exists; such
    # a renote can no longer be shown to anyone.
    renote = models.ForeignKey(
        "self",
        null=True,
        related_name="renotes",
        on_delete=DO_NOTHING,
        db_constraint=False,
    )

    # Users referenced as `@username` in the content.
    mentioned_users = models.ManyToManyField(UserProfile, related_name="mentioned_in")

    date_sent = models.DateTimeField(default=timezone_now, db_index=True)

    @override
    def __str__(self) -> str:
        return f"{self.sender.email} / {self.id}"

    def is_renote(self) -> bool:
        return self.renote_id is not None


class Reaction(models.Model):
    user_profile = models.ForeignKey(UserProfile, on_delete=CASCADE)
    note = models.ForeignKey(Note, related_name="reactions", on_delete=CASCADE)
    # A short reaction name, like "like" or "+1".
    reaction = models.CharField(max_length=MAX_REACTION_LENGTH)
    date_created = models.DateTimeField(default=timezone_now)

    class Meta:
        unique_together = ("user_profile", "note")

    @override
    def __str__(self) -> str:
        return f"{self.user_profile.email} / {self.note_id} / {self.reaction}"
