"""Visibility rules for muted users.

Every place that shows content to a user (timelines, mention lists,
notification lists, unread flags, and the event queues) decides what to
show with the predicates in this module, so that all of them agree.

The predicates themselves are pure functions of a snapshot of the
content and of the observer's set of muted user IDs; the *_to_user
wrappers fetch that set.
"""

from collections.abc import Collection, Mapping
from dataclasses import dataclass
from typing import Any, Optional

from chirp.lib.muted_users import access_muted_user_ids

# Renote chains longer than this are not followed; such a chain is
# treated like one whose target could not be found.
MAX_RENOTE_DEPTH = 8


@dataclass(frozen=True)
class NoteVisibilityData:
    note_id: int
    sender_id: int
    # The renoted note, when this note is a renote whose target could
    # be loaded.
    renote: Optional["NoteVisibilityData"]
    # True when this note is a renote but its target could not be
    # loaded (deleted, or beyond MAX_RENOTE_DEPTH).
    renote_unresolved: bool = False

    @classmethod
    def from_note_dict(cls, note_dict: Mapping[str, Any], depth: int = 0) -> "NoteVisibilityData":
        renote: NoteVisibilityData | None = None
        renote_unresolved = False
        if note_dict.get("renote_id") is not None:
            renote_dict = note_dict.get("renote")
            if renote_dict is None or depth >= MAX_RENOTE_DEPTH:
                renote_unresolved = True
            else:
                renote = cls.from_note_dict(renote_dict, depth + 1)
        return cls(
            note_id=note_dict["id"],
            sender_id=note_dict["sender_id"],
            renote=renote,
            renote_unresolved=renote_unresolved,
        )


def is_note_visible(muted_user_ids: Collection[int], data: NoteVisibilityData) -> bool:
    current: NoteVisibilityData | None = data
    while current is not None:
        if current.sender_id in muted_user_ids:
            return False
        if current.renote_unresolved:
            # We cannot tell who wrote the renoted content, so it
            # cannot be shown.
            return False
        current = current.renote
    return True


def is_notification_visible(
    muted_user_ids: Collection[int],
    notifier_id: int | None,
    note_data: NoteVisibilityData | None = None,
) -> bool:
    """Notifications are attributed to the user whose action produced
    them (the mentioner, reactor, renoter or follower), independently of
    who wrote the note they refer to.

    For mentions, `note_data` is the mentioning note, which must itself
    be visible; a mention inside a renote of a muted user's note is
    hidden like the note."""
    if notifier_id is not None and notifier_id in muted_user_ids:
        return False
    if note_data is not None and not is_note_visible(muted_user_ids, note_data):
        return False
    return True


def notification_note_data(notification_dict: Mapping[str, Any]) -> NoteVisibilityData | None:
    if notification_dict["type"] != "mention" or notification_dict.get("note") is None:
        return None
    return NoteVisibilityData.from_note_dict(notification_dict["note"])


def note_is_visible_to_user(user_profile_id: int, note_dict: Mapping[str, Any]) -> bool:
    return is_note_visible(
        access_muted_user_ids(user_profile_id), NoteVisibilityData.from_note_dict(note_dict)
    )


def notification_is_visible_to_user(
    user_profile_id: int, notification_dict: Mapping[str, Any]
) -> bool:
    return is_notification_visible(
        access_muted_user_ids(user_profile_id),
        notification_dict["user_id"],
        notification_note_data(notification_dict),
    )


def event_is_visible_to_user(user_profile_id: int, event: Mapping[str, Any]) -> bool:
    """Events that carry a note or a notification are checked against
    the same rules as the list endpoints; other events (heartbeats, the
    user's own settings changes, read markers) are always delivered."""
    if "note" in event and not note_is_visible_to_user(user_profile_id, event["note"]):
        return False
    if "notification" in event and not notification_is_visible_to_user(
        user_profile_id, event["notification"]
    ):
        return False
    return True
