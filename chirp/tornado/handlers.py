"""Tornado's side of the live channels.

Tornado receives the long-polling get_events requests (and the
internal requests Django sends it) and runs each of them through an
ordinary Django request cycle.  When the view returns an
AsynchronousResponse, the handler stays open without answering; the
event queue answers it later through finish_handler.
"""

import itertools
from collections.abc import Collection
from contextlib import suppress
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote

import tornado.ioloop
import tornado.web
from asgiref.sync import sync_to_async
from django.conf import settings
from django.core import signals
from django.core.handlers.base import BaseHandler
from django.core.handlers.wsgi import WSGIRequest, get_script_name
from django.http import HttpRequest, HttpResponse
from django.http.response import HttpResponseBase
from django.urls import set_script_prefix
from tornado.iostream import StreamClosedError
from tornado.wsgi import WSGIContainer
from typing_extensions import override

from chirp.lib.request import RequestNotes
from chirp.lib.response import AsynchronousResponse, json_response

if TYPE_CHECKING:
    from chirp.tornado.event_queue import ClientDescriptor

TORNADO_PATHS = ("/notify_tornado", "/api/v1/events", "/api/v1/events/internal")

# Open handlers, by handler id.  A handler is removed once its
# response is written or its client goes away.
handlers: dict[int, "AsyncDjangoHandler"] = {}
handler_ids = itertools.count()

# Only used for its environ() method.
wsgi_environ_builder = WSGIContainer(lambda environ, start_response: [])


def get_handler_by_id(handler_id: int) -> "AsyncDjangoHandler | None":
    return handlers.get(handler_id)


def handler_stats_string() -> str:
    return f"{len(handlers)} open handlers"


def finish_handler(handler_id: int, event_queue_id: str, contents: list[dict[str, Any]]) -> None:
    """Answers the long poll waiting on handler `handler_id` with the
    queue's current events.  Safe to call from any thread."""
    handler = get_handler_by_id(handler_id)
    if handler is None:
        # The client disconnected in the meantime.
        return
    assert handler.django_request is not None

    if len(contents) == 1:
        summary = f"[{event_queue_id}/1/{contents[0]['type']}]"
    else:
        summary = f"[{event_queue_id}/{len(contents)}]"
    RequestNotes.get_notes(handler.django_request).extra_log_data = summary

    handler.ioloop.add_callback(
        handler.finish_long_poll,
        dict(result="success", msg="", events=contents, queue_id=event_queue_id),
    )


class AsyncDjangoHandler(tornado.web.RequestHandler):
    SUPPORTED_METHODS: Collection[str] = {"GET", "POST", "DELETE"}  # type: ignore[assignment]

    @override
    def initialize(self, django_handler: BaseHandler) -> None:
        self.django_handler = django_handler
        # Views run in worker threads, where IOLoop.current() would be
        # a different loop; callbacks for this handler go through the
        # loop serving it.
        self.ioloop = tornado.ioloop.IOLoop.current()
        # The response is written by get() or by finish_long_poll,
        # never when get() merely returns.
        self._auto_finish = False

        self.handler_id = next(handler_ids)
        handlers[self.handler_id] = self
        self.django_request: HttpRequest | None = None
        # The queue this handler is long-polling, if any.
        self.client_descriptor: ClientDescriptor | None = None

    @override
    def __repr__(self) -> str:
        return f"AsyncDjangoHandler<{self.handler_id}, {self.client_descriptor}>"

    @override
    def on_finish(self) -> None:
        handlers.pop(self.handler_id, None)

    @override
    def on_connection_close(self) -> None:
        handlers.pop(self.handler_id, None)
        if self.client_descriptor is not None:
            self.client_descriptor.detach_long_poll(client_closed=True)

    async def build_django_request(self) -> HttpRequest:
        """The Django request for the HTTP request Tornado received,
        prepared the way Django's WSGIHandler prepares one."""
        environ = wsgi_environ_builder.environ(self.request)
        environ["PATH_INFO"] = unquote(environ["PATH_INFO"])
        set_script_prefix(get_script_name(environ))
        await sync_to_async(signals.request_started.send, thread_sensitive=True)(
            sender=type(self.django_handler), environ=environ
        )
        request = WSGIRequest(environ)
        RequestNotes.get_notes(request).tornado_handler_id = self.handler_id
        return request

    async def run_django(self, request: HttpRequest) -> HttpResponseBase:
        return await sync_to_async(self.django_handler.get_response, thread_sensitive=True)(
            request
        )

    async def write_response(self, response: HttpResponseBase) -> None:
        assert isinstance(response, HttpResponse)
        self.set_status(response.status_code)
        for name, value in response.items():
            self.set_header(name, value)
        self.write(response.content)
        # The client may be gone by now.
        with suppress(StreamClosedError):
            await self.finish()

    @override
    async def get(self, *args: Any, **kwargs: Any) -> None:
        request = self.django_request = await self.build_django_request()
        response = await self.run_django(request)
        try:
            # An AsynchronousResponse leaves the request open as a
            # long poll.
            if not isinstance(response, AsynchronousResponse):
                await self.write_response(response)
        finally:
            # Runs Django's request_finished cleanup.
            await sync_to_async(response.close, thread_sensitive=True)()

    @override
    async def post(self, *args: Any, **kwargs: Any) -> None:
        await self.get(*args, **kwargs)

    @override
    async def delete(self, *args: Any, **kwargs: Any) -> None:
        await self.get(*args, **kwargs)

    async def finish_long_poll(self, result: dict[str, Any]) -> None:
        """Writes `result` as the answer to the pending long poll.

        The response goes through a second Django request cycle, so
        that the middleware logs the long poll like any other request;
        rest_dispatch returns the saved response without running the
        view again.
        """
        old_request = self.django_request
        assert old_request is not None
        old_notes = RequestNotes.get_notes(old_request)

        request = await self.build_django_request()
        request.user = old_request.user
        notes = RequestNotes.get_notes(request)
        notes.started_at = old_notes.started_at
        notes.client_name = old_notes.client_name
        notes.requester_for_logs = old_notes.requester_for_logs
        notes.extra_log_data = old_notes.extra_log_data
        notes.saved_response = json_response(res_type=result["result"], data=result)

        response = await self.run_django(request)
        try:
            await self.write_response(response)
        finally:
            await sync_to_async(response.close, thread_sensitive=True)()


def create_tornado_application() -> tornado.web.Application:
    django_handler = BaseHandler()
    django_handler.load_middleware()
    return tornado.web.Application(
        [(path, AsyncDjangoHandler, dict(django_handler=django_handler)) for path in TORNADO_PATHS],
        debug=settings.DEBUG,
        autoreload=False,
        # Requests are logged by chirp.middleware.LogRequests.
        log_function=lambda handler: None,
    )
