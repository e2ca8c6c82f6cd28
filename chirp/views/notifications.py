from django.http import HttpRequest, HttpResponse
from pydantic import Json

from chirp.actions.unreads import do_mark_all_mentions_as_read, do_mark_all_notifications_as_read
from chirp.lib.notifications import fetch_notifications
from chirp.lib.response import json_success
from chirp.lib.timelines import DEFAULT_TIMELINE_LIMIT
from chirp.lib.typed_endpoint import typed_endpoint, typed_endpoint_without_parameters
from chirp.models import UserProfile
from chirp.views.notes import TimelineLimit


@typed_endpoint
def get_notifications(
    request: HttpRequest,
    user_profile: UserProfile,
    *,
    limit: Json[TimelineLimit] = DEFAULT_TIMELINE_LIMIT,
    since_id: Json[int] | None = None,
    until_id: Json[int] | None = None,
    mark_as_read: Json[bool] = False,
) -> HttpResponse:
    notifications = fetch_notifications(
        user_profile, limit=limit, since_id=since_id, until_id=until_id
    )
    if mark_as_read:
        do_mark_all_notifications_as_read(user_profile)
    return json_success(request, data={"notifications": notifications})


@typed_endpoint_without_parameters
def mark_all_notifications_as_read(request: HttpRequest, user_profile: UserProfile) -> HttpResponse:
    count = do_mark_all_notifications_as_read(user_profile)
    return json_success(request, data={"updated_count": count})


@typed_endpoint_without_parameters
def mark_all_mentions_as_read(request: HttpRequest, user_profile: UserProfile) -> HttpResponse:
    do_mark_all_mentions_as_read(user_profile)
    return json_success(request)
