import time
from typing import Any

from django.http import HttpRequest, HttpResponse
from pydantic import Json, NonNegativeInt

from chirp.decorator import tornado_internal_view
from chirp.lib.request import RequestNotes
from chirp.lib.response import AsynchronousResponse, json_success
from chirp.lib.typed_endpoint import typed_endpoint
from chirp.models import UserProfile
from chirp.models.users import get_user_profile_by_id
from chirp.tornado.event_queue import (
    ChannelName,
    access_user_queue,
    allocate_client_descriptor,
    fetch_events,
    process_notification,
)


@tornado_internal_view
@typed_endpoint
def notify(request: HttpRequest, *, data: Json[dict[str, Any]]) -> HttpResponse:
    process_notification(data)
    return json_success(request)


@typed_endpoint
def cleanup_event_queue(
    request: HttpRequest, user_profile: UserProfile, *, queue_id: str
) -> HttpResponse:
    RequestNotes.get_notes(request).extra_log_data = f"[{queue_id}]"
    access_user_queue(user_profile.id, queue_id).close()
    return json_success(request)


@tornado_internal_view
@typed_endpoint
def get_events_internal(
    request: HttpRequest,
    *,
    user_profile_id: Json[int],
    channel: ChannelName,
    user_client: str = "internal",
    lifespan_secs: Json[NonNegativeInt] = 0,
) -> HttpResponse:
    """Allocates a queue on behalf of Django's register endpoint."""
    user_profile = get_user_profile_by_id(user_profile_id)
    RequestNotes.get_notes(request).requester_for_logs = user_profile.email
    client = allocate_client_descriptor(
        dict(
            user_profile_id=user_profile.id,
            channel=channel,
            client_type_name=user_client,
            queue_timeout=lifespan_secs,
            last_connection_time=time.time(),
        )
    )
    return json_success(request, data=dict(queue_id=client.event_queue.id, events=[]))


@typed_endpoint
def get_events(
    request: HttpRequest,
    user_profile: UserProfile,
    *,
    queue_id: str,
    last_event_id: Json[int] | None = None,
    dont_block: Json[bool] = False,
) -> HttpResponse:
    request_notes = RequestNotes.get_notes(request)
    result = fetch_events(
        queue_id=queue_id,
        dont_block=dont_block,
        last_event_id=last_event_id,
        user_profile_id=user_profile.id,
        client_type_name=request_notes.client_name,
        handler_id=request_notes.tornado_handler_id,
    )
    request_notes.extra_log_data = result.get("extra_log_data")

    if result["type"] == "error":
        raise result["exception"]
    if result["type"] == "async":
        # Tornado keeps the request open; the event queue answers it.
        return AsynchronousResponse()
    return json_success(request, data=result["response"])
