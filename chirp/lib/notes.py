from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import Any

from django.utils.translation import gettext as _

from chirp.lib.exceptions import ResourceNotFoundError
from chirp.lib.timestamp import datetime_to_timestamp
from chirp.lib.visibility import MAX_RENOTE_DEPTH
from chirp.models import Note


def access_note_by_id(note_id: int) -> Note:
    try:
        return Note.objects.select_related("sender").get(id=note_id)
    except Note.DoesNotExist:
        raise ResourceNotFoundError(_("Invalid note(s)"))


def get_mentioned_user_ids(note_ids: Iterable[int]) -> dict[int, list[int]]:
    rows = (
        Note.mentioned_users.through.objects.filter(note_id__in=note_ids)
        .values_list("note_id", "userprofile_id")
        .order_by("userprofile_id")
    )
    mentioned: dict[int, list[int]] = defaultdict(list)
    for note_id, user_profile_id in rows:
        mentioned[note_id].append(user_profile_id)
    return mentioned


def fetch_renote_targets(notes: Sequence[Note]) -> dict[int, Note]:
    """Loads every note reachable through renote chains from `notes`,
    following at most MAX_RENOTE_DEPTH links.  Targets that no longer
    exist are simply absent from the result."""
    fetched: dict[int, Note] = {note.id: note for note in notes}
    pending = {note.renote_id for note in notes if note.renote_id is not None}
    for _depth in range(MAX_RENOTE_DEPTH):
        pending -= fetched.keys()
        if not pending:
            break
        targets = list(Note.objects.filter(id__in=pending))
        for target in targets:
            fetched[target.id] = target
        pending = {target.renote_id for target in targets if target.renote_id is not None}
    return fetched


def build_note_dicts(notes: Sequence[Note]) -> list[dict[str, Any]]:
    """Converts notes into the dictionaries we return to clients and
    pass to the event system.  A renote carries the renoted note,
    recursively, under "renote"; "renote" is None with "renote_id"
    set when the renoted note is gone."""
    fetched = fetch_renote_targets(notes)
    mentioned = get_mentioned_user_ids(fetched.keys())

    def note_dict(note: Note, depth: int) -> dict[str, Any]:
        renote: dict[str, Any] | None = None
        if (
            note.renote_id is not None
            and note.renote_id in fetched
            and depth < MAX_RENOTE_DEPTH
        ):
            renote = note_dict(fetched[note.renote_id], depth + 1)
        return dict(
            id=note.id,
            sender_id=note.sender_id,
            content=note.content,
            renote_id=note.renote_id,
            renote=renote,
            mentioned_user_ids=mentioned.get(note.id, []),
            timestamp=datetime_to_timestamp(note.date_sent),
        )

    return [note_dict(note, 0) for note in notes]


def build_note_dict(note: Note) -> dict[str, Any]:
    return build_note_dicts([note])[0]
