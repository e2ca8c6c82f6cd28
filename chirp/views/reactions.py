from typing import Annotated

from django.http import HttpRequest, HttpResponse
from pydantic import StringConstraints

from chirp.actions.reactions import do_add_reaction, do_remove_reaction
from chirp.lib.notes import access_note_by_id
from chirp.lib.response import json_success
from chirp.lib.typed_endpoint import PathOnly, typed_endpoint
from chirp.models import UserProfile
from chirp.models.notes import MAX_REACTION_LENGTH


@typed_endpoint
def add_reaction(
    request: HttpRequest,
    user_profile: UserProfile,
    *,
    note_id: PathOnly[int],
    reaction: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_REACTION_LENGTH)
    ],
) -> HttpResponse:
    note = access_note_by_id(note_id)
    do_add_reaction(user_profile, note, reaction)
    return json_success(request)


@typed_endpoint
def remove_reaction(
    request: HttpRequest, user_profile: UserProfile, *, note_id: PathOnly[int]
) -> HttpResponse:
    note = access_note_by_id(note_id)
    do_remove_reaction(user_profile, note)
    return json_success(request)
