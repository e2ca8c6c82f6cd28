import logging

from django.db import transaction
from django.utils.translation import gettext as _

from chirp.actions.notifications import do_create_notification
from chirp.actions.unreads import do_flag_unread_mention
from chirp.lib.exceptions import AccessDeniedError, JsonableError
from chirp.lib.mention import get_mentioned_users
from chirp.lib.notes import access_note_by_id, build_note_dict
from chirp.models import Following, Note, Notification, UserProfile
from chirp.models.notes import MAX_NOTE_LENGTH
from chirp.models.users import active_user_ids
from chirp.tornado.django_api import send_event_on_commit

logger = logging.getLogger("chirp.notes")


def check_note_content(content: str, *, is_renote: bool) -> str:
    content = content.strip()
    if content == "" and not is_renote:
        raise JsonableError(_("Note must not be empty"))
    if len(content) > MAX_NOTE_LENGTH:
        raise JsonableError(
            _("Note is too long (limit: {max_length} characters)").format(
                max_length=MAX_NOTE_LENGTH
            )
        )
    return content


def get_note_event_users(sender: UserProfile) -> list[dict[str, object]]:
    """Every active user gets note events for the local timeline; the
    sender and their followers also get them for the home timeline."""
    follower_ids = set(
        Following.objects.filter(followee=sender).values_list("follower_id", flat=True)
    )
    follower_ids.add(sender.id)
    return [
        dict(id=user_id, home_timeline=user_id in follower_ids) for user_id in active_user_ids()
    ]


@transaction.atomic(durable=True)
def check_send_note(
    sender: UserProfile,
    content: str,
    renote_id: int | None = None,
) -> Note:
    renote = None
    if renote_id is not None:
        renote = access_note_by_id(renote_id)
    content = check_note_content(content, is_renote=renote is not None)

    note = Note.objects.create(sender=sender, content=content, renote=renote)
    mentioned_users = get_mentioned_users(content)
    note.mentioned_users.set(mentioned_users)
    note_dict = build_note_dict(note)

    for mentioned_user in mentioned_users:
        if mentioned_user.id == sender.id:
            continue
        do_flag_unread_mention(mentioned_user.id, note_dict)
        do_create_notification(mentioned_user, sender, Notification.MENTION, note=note)

    if renote is not None and renote.sender_id != sender.id:
        do_create_notification(renote.sender, sender, Notification.RENOTE, note=note)

    send_event_on_commit(dict(type="note", note=note_dict), get_note_event_users(sender))
    logger.info("%s sent note %s", sender.email, note.id)
    return note


@transaction.atomic(durable=True)
def do_delete_note(user_profile: UserProfile, note: Note) -> None:
    """Renotes of a deleted note keep pointing at it, and are hidden
    from everyone from now on."""
    if note.sender_id != user_profile.id:
        raise AccessDeniedError
    note_id = note.id
    note.delete()
    logger.info("%s deleted note %s", user_profile.email, note_id)
