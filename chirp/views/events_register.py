from django.http import HttpRequest, HttpResponse
from pydantic import Json, NonNegativeInt

from chirp.lib.request import RequestNotes
from chirp.lib.response import json_success
from chirp.lib.typed_endpoint import typed_endpoint
from chirp.models import UserProfile
from chirp.tornado.django_api import request_event_queue
from chirp.tornado.event_queue import MAIN_CHANNEL, ChannelName


@typed_endpoint
def events_register_backend(
    request: HttpRequest,
    user_profile: UserProfile,
    *,
    channel: ChannelName = MAIN_CHANNEL,
    lifespan_secs: Json[NonNegativeInt] = 0,
) -> HttpResponse:
    client_name = RequestNotes.get_notes(request).client_name or "Unspecified"
    queue_id = request_event_queue(
        user_profile, client_name, channel, queue_lifespan_secs=lifespan_secs
    )
    return json_success(request, data={"queue_id": queue_id, "last_event_id": -1})
