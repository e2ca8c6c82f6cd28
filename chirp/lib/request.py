import weakref
from dataclasses import dataclass

from django.http import HttpRequest, HttpResponse

_notes_by_request: "weakref.WeakKeyDictionary[HttpRequest, RequestNotes]" = (
    weakref.WeakKeyDictionary()
)


@dataclass
class RequestNotes:
    """State that Chirp's middleware, decorators and Tornado handler
    attach to a Django HttpRequest.  It lives in a weak mapping keyed
    on the request, so it goes away together with the request.
    """

    client_name: str = "Unspecified"
    requester_for_logs: str | None = None
    # time.time() when the middleware first saw the request; a
    # long-polled request keeps its original start time when it is
    # finished from a second, internal request.
    started_at: float | None = None
    extra_log_data: str | None = None
    # Set by the Tornado handler when finishing a long poll;
    # rest_dispatch returns it without running the view again.
    saved_response: HttpResponse | None = None
    tornado_handler_id: int | None = None

    @classmethod
    def get_notes(cls, request: HttpRequest) -> "RequestNotes":
        notes = _notes_by_request.get(request)
        if notes is None:
            notes = _notes_by_request[request] = cls()
        return notes
