from django.urls import include, path

from chirp.lib.rest import rest_path
from chirp.tornado.views import cleanup_event_queue, get_events, get_events_internal, notify
from chirp.views.events_register import events_register_backend
from chirp.views.muted_users import list_muted_users, mute_user, unmute_user
from chirp.views.notes import (
    delete_note_backend,
    get_home_timeline,
    get_local_timeline,
    get_mentions,
    send_note_backend,
)
from chirp.views.notifications import (
    get_notifications,
    mark_all_mentions_as_read,
    mark_all_notifications_as_read,
)
from chirp.views.reactions import add_reaction, remove_reaction
from chirp.views.users import follow_user, get_profile, unfollow_user

# Every API endpoint is declared with rest_path, which authenticates
# the request with HTTP basic auth (email:api_key) and dispatches on
# the HTTP method.
v1_api_and_json_patterns = [
    # users
    rest_path("users/me", GET=get_profile),
    rest_path("users/me/muted_users", GET=list_muted_users),
    rest_path("users/me/muted_users/<int:muted_user_id>", POST=mute_user, DELETE=unmute_user),
    rest_path("users/me/mentions/mark_all_as_read", POST=mark_all_mentions_as_read),
    rest_path("users/me/notifications", GET=get_notifications),
    rest_path("users/me/notifications/mark_all_as_read", POST=mark_all_notifications_as_read),
    rest_path("users/<int:user_id>/follow", POST=follow_user, DELETE=unfollow_user),
    # notes
    rest_path("notes", POST=send_note_backend),
    rest_path("notes/mentions", GET=get_mentions),
    rest_path("notes/local_timeline", GET=get_local_timeline),
    rest_path("notes/home_timeline", GET=get_home_timeline),
    rest_path("notes/<int:note_id>", DELETE=delete_note_backend),
    rest_path("notes/<int:note_id>/reactions", POST=add_reaction, DELETE=remove_reaction),
    # live channels; in production /api/v1/events is served by Tornado
    rest_path("register", POST=events_register_backend),
    rest_path("events", GET=get_events, DELETE=cleanup_event_queue),
    path("events/internal", get_events_internal),
]

urlpatterns = [
    path("api/v1/", include(v1_api_and_json_patterns)),
    # Used internally for communication between Django and Tornado
    # processes.
    path("notify_tornado", notify),
]
