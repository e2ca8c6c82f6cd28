from collections.abc import Callable

from django.http import HttpRequest, HttpResponse
from django.urls import path
from django.urls.resolvers import URLPattern
from django.utils.cache import add_never_cache_headers
from django.views.decorators.csrf import csrf_exempt

from chirp.decorator import authenticated_api_view, process_as_post
from chirp.lib.request import RequestNotes
from chirp.lib.response import json_method_not_allowed

HTTP_METHODS = frozenset({"GET", "HEAD", "POST", "DELETE"})


@csrf_exempt
def rest_dispatch(request: HttpRequest, /, **kwargs: object) -> HttpResponse:
    """Routes an API request to the view registered for its HTTP method.

    `kwargs` holds the method-to-view mapping given to rest_path
    together with the URL's captured variables; only the latter are
    passed on to the view.  Every view is authenticated with HTTP
    basic auth, using email:api_key as the credentials.
    """
    request_notes = RequestNotes.get_notes(request)
    if request_notes.saved_response is not None:
        # The Tornado handler is completing a long poll; the response
        # was already computed.
        return request_notes.saved_response

    views = {method: kwargs.pop(method) for method in HTTP_METHODS & kwargs.keys()}
    if "GET" in views:
        views.setdefault("HEAD", views["GET"])
    view_func = views.get(request.method or "")
    if not callable(view_func):
        return json_method_not_allowed(sorted(views))

    target = authenticated_api_view(view_func)
    if request.method == "DELETE":
        target = process_as_post(target)

    response = target(request, **kwargs)
    if not response.has_header("Cache-Control"):
        add_never_cache_headers(response)
    return response


def rest_path(route: str, **views: Callable[..., HttpResponse]) -> URLPattern:
    return path(route, rest_dispatch, views)
