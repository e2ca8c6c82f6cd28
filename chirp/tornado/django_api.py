"""How the Django processes reach the Tornado process that owns the
event queues.

Events must only be sent from chirp/actions/, and almost always with
send_event_on_commit, so that a rolled-back change is never announced.
"""

import time
from collections.abc import Iterable, Mapping
from functools import lru_cache
from typing import Any

import orjson
import requests
from django.conf import settings
from django.db import transaction
from requests.adapters import ConnectionError, HTTPAdapter
from requests.models import PreparedRequest, Response
from typing_extensions import override
from urllib3.util import Retry

from chirp.models import UserProfile

EventUsers = Iterable[int] | Iterable[Mapping[str, Any]]


class TornadoAdapter(HTTPAdapter):
    def __init__(self) -> None:
        # Tornado's internal endpoints are idempotent enough that a
        # POST can be retried too.
        retry = Retry(
            total=3,
            backoff_factor=1,
            allowed_methods=Retry.DEFAULT_ALLOWED_METHODS | {"POST"},
        )
        super().__init__(max_retries=retry)

    @override
    def send(
        self,
        request: PreparedRequest,
        stream: bool = False,
        timeout: None | float | tuple[float, float] | tuple[float, None] = 0.5,
        verify: bool | str = True,
        cert: None | bytes | str | tuple[bytes | str, bytes | str] = None,
        proxies: Mapping[str, str] | None = None,
    ) -> Response:
        # Tornado runs on localhost; an HTTP proxy from the environment
        # would not reach it.
        try:
            response = super().send(
                request, stream=stream, timeout=timeout, verify=verify, cert=cert, proxies={}
            )
        except ConnectionError:
            raise ConnectionError(
                f"Could not reach the Tornado server at {request.url};"
                f" see {settings.TORNADO_LOG_PATH}"
            )
        response.raise_for_status()
        return response


@lru_cache(None)
def requests_client() -> requests.Session:
    session = requests.Session()
    adapter = TornadoAdapter()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def events_are_local() -> bool:
    # Without a separate Tornado process (as in the test suite), the
    # queues live in this process.
    return not settings.USING_TORNADO or settings.RUNNING_INSIDE_TORNADO


def request_event_queue(
    user_profile: UserProfile,
    client_type_name: str,
    channel: str,
    queue_lifespan_secs: int = 0,
) -> str:
    """Registers a new queue on `channel` and returns its id."""
    if events_are_local():
        from chirp.tornado.event_queue import allocate_client_descriptor

        client = allocate_client_descriptor(
            dict(
                user_profile_id=user_profile.id,
                channel=channel,
                client_type_name=client_type_name,
                queue_timeout=queue_lifespan_secs,
                last_connection_time=time.time(),
            )
        )
        return client.event_queue.id

    response = requests_client().post(
        settings.TORNADO_URL + "/api/v1/events/internal",
        data={
            "user_profile_id": user_profile.id,
            "channel": channel,
            "user_client": client_type_name,
            "lifespan_secs": queue_lifespan_secs,
            "secret": settings.SHARED_SECRET,
        },
    )
    return response.json()["queue_id"]


def send_notification_http(data: Mapping[str, Any]) -> None:
    if events_are_local():
        from chirp.tornado.event_queue import process_notification

        process_notification(data)
        return

    requests_client().post(
        settings.TORNADO_URL + "/notify_tornado",
        data=dict(data=orjson.dumps(data), secret=settings.SHARED_SECRET),
    )


def send_event_rollback_unsafe(event: Mapping[str, Any], users: EventUsers) -> None:
    """Sends `event` right away, even if the surrounding transaction
    is later rolled back.  `users` are user ids, or for note events,
    dicts with the user's `id` and `home_timeline` flag."""
    send_notification_http(dict(event=event, users=list(users)))


def send_event_on_commit(event: Mapping[str, Any], users: EventUsers) -> None:
    # Events travel to Tornado as JSON; a value that cannot be
    # serialized fails here, in the action that built it.
    event = orjson.loads(orjson.dumps(event))
    users = list(users)
    transaction.on_commit(lambda: send_event_rollback_unsafe(event, users))
