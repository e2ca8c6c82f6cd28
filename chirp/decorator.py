import base64
from collections.abc import Callable
from functools import wraps
from typing import Concatenate

from django.conf import settings
from django.http import HttpRequest, HttpResponse, QueryDict
from django.utils.crypto import constant_time_compare
from django.utils.translation import gettext as _
from django.views.decorators.csrf import csrf_exempt
from typing_extensions import ParamSpec

from chirp.lib.exceptions import (
    AccessDeniedError,
    InvalidAPIKeyError,
    JsonableError,
    UnauthorizedError,
    UserDeactivatedError,
)
from chirp.lib.request import RequestNotes
from chirp.lib.response import json_method_not_allowed
from chirp.lib.utils import has_api_key_format
from chirp.models import UserProfile
from chirp.models.users import get_user_profile_by_api_key

ParamT = ParamSpec("ParamT")

LOCAL_ADDRESSES = ("127.0.0.1", "::1")


def parse_basic_auth(request: HttpRequest) -> tuple[str, str]:
    """The (email, api_key) pair sent as HTTP basic credentials."""
    header = request.headers.get("Authorization")
    if header is None:
        raise UnauthorizedError
    scheme, _sep, encoded = header.strip().partition(" ")
    # Scheme names are case-insensitive (RFC 7235).
    if scheme.lower() != "basic":
        raise JsonableError(_("This endpoint requires HTTP basic authentication."))
    try:
        email, api_key = base64.b64decode(encoded.strip()).decode().split(":")
    except ValueError:
        raise UnauthorizedError(_("Invalid authorization header for basic auth"))
    return email.strip(), api_key.strip()


def authenticate_api_request(request: HttpRequest) -> UserProfile:
    email, api_key = parse_basic_auth(request)
    if not has_api_key_format(api_key):
        raise InvalidAPIKeyError(malformed=True)
    try:
        user_profile = get_user_profile_by_api_key(api_key)
    except UserProfile.DoesNotExist:
        raise InvalidAPIKeyError
    # A key sent along with another user's email is treated as unknown.
    if email.lower() != user_profile.email.lower():
        raise InvalidAPIKeyError
    if not user_profile.is_active:
        raise UserDeactivatedError

    request.user = user_profile
    RequestNotes.get_notes(request).requester_for_logs = user_profile.email
    return user_profile


def authenticated_api_view(
    view_func: Callable[Concatenate[HttpRequest, UserProfile, ParamT], HttpResponse],
) -> Callable[Concatenate[HttpRequest, ParamT], HttpResponse]:
    @csrf_exempt
    @wraps(view_func)
    def _wrapped_view_func(
        request: HttpRequest, /, *args: ParamT.args, **kwargs: ParamT.kwargs
    ) -> HttpResponse:
        user_profile = authenticate_api_request(request)
        return view_func(request, user_profile, *args, **kwargs)

    return _wrapped_view_func


def process_as_post(
    view_func: Callable[Concatenate[HttpRequest, ParamT], HttpResponse],
) -> Callable[Concatenate[HttpRequest, ParamT], HttpResponse]:
    """Django only parses the form body of POST requests; this gives
    DELETE handlers the same request.POST."""

    @wraps(view_func)
    def _wrapped_view_func(
        request: HttpRequest, /, *args: ParamT.args, **kwargs: ParamT.kwargs
    ) -> HttpResponse:
        if not request.POST and request.content_type == "application/x-www-form-urlencoded":
            request.POST = QueryDict(request.body, encoding=request.encoding)  # type: ignore[assignment]
        return view_func(request, *args, **kwargs)

    return _wrapped_view_func


def tornado_internal_view(
    view_func: Callable[Concatenate[HttpRequest, ParamT], HttpResponse],
) -> Callable[Concatenate[HttpRequest, ParamT], HttpResponse]:
    """For requests the Django processes make to the Tornado process.
    They must be POSTed from localhost with the shared secret."""

    @csrf_exempt
    @wraps(view_func)
    def _wrapped_view_func(
        request: HttpRequest, /, *args: ParamT.args, **kwargs: ParamT.kwargs
    ) -> HttpResponse:
        if request.method != "POST":
            return json_method_not_allowed(["POST"])
        secret = request.POST.get("secret", "")
        if request.META.get("REMOTE_ADDR") not in LOCAL_ADDRESSES or not constant_time_compare(
            secret, settings.SHARED_SECRET
        ):
            raise AccessDeniedError

        request_notes = RequestNotes.get_notes(request)
        if request_notes.tornado_handler_id is None:
            # Not a security check; the URL was routed to Django.
            raise RuntimeError(f"{view_func.__name__} called outside of Tornado")
        request_notes.requester_for_logs = "internal"
        return view_func(request, *args, **kwargs)

    return _wrapped_view_func
