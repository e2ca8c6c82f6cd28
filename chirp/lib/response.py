from collections.abc import Mapping
from typing import Any

import orjson
from django.http import HttpRequest, HttpResponse, HttpResponseNotAllowed

from chirp.lib.exceptions import JsonableError


def json_response(
    res_type: str = "success", msg: str = "", data: Mapping[str, Any] = {}, status: int = 200
) -> HttpResponse:
    # Every API response body has "result" and "msg"; endpoint data
    # is merged in at the top level.
    body = {**data, "result": res_type, "msg": msg}
    return HttpResponse(
        orjson.dumps(body, option=orjson.OPT_APPEND_NEWLINE),
        content_type="application/json",
        status=status,
    )


def json_success(request: HttpRequest, data: Mapping[str, Any] = {}) -> HttpResponse:
    return json_response(data=data)


def json_no_content(request: HttpRequest) -> HttpResponse:
    return HttpResponse(status=204)


def json_method_not_allowed(methods: list[str]) -> HttpResponseNotAllowed:
    response = HttpResponseNotAllowed(methods)
    response.content = orjson.dumps(
        {"result": "error", "msg": "Method Not Allowed", "allowed_methods": methods}
    )
    response["Content-Type"] = "application/json"
    return response


def json_response_from_error(exception: JsonableError) -> HttpResponse:
    """Only the error middleware should need this; view code raises."""
    response = json_response(
        "error", msg=exception.msg, data=exception.data, status=exception.http_status_code
    )
    for header, value in exception.extra_headers.items():
        response[header] = value
    return response


class AsynchronousResponse(HttpResponse):
    """Returned by a long-polling view to tell the Tornado handler to
    keep the connection open; the real response is written later by
    AsyncDjangoHandler.finish_long_poll.
    """

    status_code = 399
