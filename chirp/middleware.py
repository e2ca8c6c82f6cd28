import logging
import time

from django.conf import settings
from django.core import signals
from django.db import connection
from django.http import HttpRequest, HttpResponse
from django.http.response import HttpResponseBase
from django.utils.deprecation import MiddlewareMixin
from django.utils.log import log_response
from django.utils.translation import gettext as _

from chirp.lib.exceptions import JsonableError
from chirp.lib.request import RequestNotes
from chirp.lib.response import AsynchronousResponse, json_response, json_response_from_error

logger = logging.getLogger("chirp.requests")


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    return f"{seconds:.1f}s"


def client_name_from_user_agent(request: HttpRequest) -> str:
    # "ChirpMobile/1.2 (Android)" is logged as "ChirpMobile".
    user_agent = request.headers.get("User-Agent", "").strip()
    if not user_agent:
        return "Unspecified"
    return user_agent.split(maxsplit=1)[0].partition("/")[0]


def log_request(request: HttpRequest, response: HttpResponseBase) -> None:
    notes = RequestNotes.get_notes(request)
    if notes.started_at is None:
        duration = "?"
    else:
        duration = format_duration(time.time() - notes.started_at)

    db_usage = ""
    queries = connection.queries if settings.DEBUG else []
    if queries:
        db_seconds = sum(float(query.get("time", 0)) for query in queries)
        db_usage = f" (db: {format_duration(db_seconds)}/{len(queries)}q)"

    extra = f" {notes.extra_log_data}" if notes.extra_log_data else ""
    requester = notes.requester_for_logs or "unauth"
    logger.info(
        "%-15s %-7s %3d %5s%s %s%s (%s via %s)",
        request.META.get("REMOTE_ADDR", ""),
        request.method,
        response.status_code,
        duration,
        db_usage,
        request.path,
        extra,
        requester,
        notes.client_name,
    )

    # Client mistakes other than bad credentials, unknown URLs and
    # wrong methods get their response body logged too.
    status = response.status_code
    if 400 <= status < 500 and status not in (401, 404, 405) and isinstance(response, HttpResponse):
        body = repr(response.content)
        if len(body) > 200:
            body = "[content more than 200 characters]"
        logger.info("status=%3d, data=%s, uid=%s", status, body, requester)


class LogRequests(MiddlewareMixin):
    def process_request(self, request: HttpRequest) -> None:
        notes = RequestNotes.get_notes(request)
        if notes.saved_response is not None:
            # Finishing a long poll; the Tornado handler has already
            # copied over the original request's notes.
            return
        notes.started_at = time.time()
        notes.client_name = client_name_from_user_agent(request)

    def process_response(
        self, request: HttpRequest, response: HttpResponseBase
    ) -> HttpResponseBase:
        if not isinstance(response, AsynchronousResponse):
            # Long polls are logged once, when they are finished.
            log_request(request, response)
        return response


class JsonErrorHandler(MiddlewareMixin):
    def process_exception(self, request: HttpRequest, exception: Exception) -> HttpResponse | None:
        if isinstance(exception, JsonableError):
            response = json_response_from_error(exception)
            if response.status_code < 500:
                return response
        elif settings.TEST_SUITE:
            # Django's test client re-raises the original exception,
            # which makes for much better test failures.
            return None
        else:
            response = json_response("error", msg=_("Internal server error"), status=500)

        # We are inside Django's exception handling here, so the
        # signal receivers and log_response see the right exc_info.
        signals.got_request_exception.send(sender=None, request=request)
        log_response(
            "%s: %s",
            response.reason_phrase,
            request.path,
            response=response,
            request=request,
            exception=exception,
        )
        return response
