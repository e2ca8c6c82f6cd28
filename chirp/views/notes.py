from typing import Annotated

from django.http import HttpRequest, HttpResponse
from pydantic import Field, Json

from chirp.actions.notes import check_send_note, do_delete_note
from chirp.lib.notes import access_note_by_id
from chirp.lib.response import json_success
from chirp.lib.timelines import (
    DEFAULT_TIMELINE_LIMIT,
    MAX_TIMELINE_LIMIT,
    fetch_home_timeline,
    fetch_local_timeline,
    fetch_mentions,
)
from chirp.lib.typed_endpoint import PathOnly, typed_endpoint
from chirp.models import UserProfile

TimelineLimit = Annotated[int, Field(ge=1, le=MAX_TIMELINE_LIMIT)]


@typed_endpoint
def send_note_backend(
    request: HttpRequest,
    user_profile: UserProfile,
    *,
    content: str = "",
    renote_id: Json[int] | None = None,
) -> HttpResponse:
    note = check_send_note(user_profile, content, renote_id=renote_id)
    return json_success(request, data={"id": note.id})


@typed_endpoint
def delete_note_backend(
    request: HttpRequest, user_profile: UserProfile, *, note_id: PathOnly[int]
) -> HttpResponse:
    note = access_note_by_id(note_id)
    do_delete_note(user_profile, note)
    return json_success(request)


@typed_endpoint
def get_local_timeline(
    request: HttpRequest,
    user_profile: UserProfile,
    *,
    limit: Json[TimelineLimit] = DEFAULT_TIMELINE_LIMIT,
    since_id: Json[int] | None = None,
    until_id: Json[int] | None = None,
) -> HttpResponse:
    notes = fetch_local_timeline(user_profile, limit=limit, since_id=since_id, until_id=until_id)
    return json_success(request, data={"notes": notes})


@typed_endpoint
def get_home_timeline(
    request: HttpRequest,
    user_profile: UserProfile,
    *,
    limit: Json[TimelineLimit] = DEFAULT_TIMELINE_LIMIT,
    since_id: Json[int] | None = None,
    until_id: Json[int] | None = None,
) -> HttpResponse:
    notes = fetch_home_timeline(user_profile, limit=limit, since_id=since_id, until_id=until_id)
    return json_success(request, data={"notes": notes})


@typed_endpoint
def get_mentions(
    request: HttpRequest,
    user_profile: UserProfile,
    *,
    limit: Json[TimelineLimit] = DEFAULT_TIMELINE_LIMIT,
    since_id: Json[int] | None = None,
    until_id: Json[int] | None = None,
) -> HttpResponse:
    notes = fetch_mentions(user_profile, limit=limit, since_id=since_id, until_id=until_id)
    return json_success(request, data={"notes": notes})
