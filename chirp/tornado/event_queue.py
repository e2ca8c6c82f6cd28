"""In-memory event queues of the live channels, owned by the Tornado
process.

Django sends every event together with the users it is for (see
chirp.tornado.django_api).  Each queue of those users then decides
with ClientDescriptor.accepts_event whether the event belongs on it;
a client long-polls its queue with get_events.
"""

import logging
import os
import random
import time
import uuid
from collections import deque
from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from contextlib import suppress
from typing import AbstractSet, Any, Literal, TypeAlias

import orjson
import tornado.ioloop
from django.conf import settings
from django.db import DatabaseError
from django.utils.translation import gettext as _
from tornado import autoreload
from typing_extensions import override

from chirp.lib.exceptions import BadEventQueueIdError, JsonableError, MuteStateUnavailableError
from chirp.lib.muted_users import bulk_get_muted_user_ids
from chirp.lib.visibility import event_is_visible_to_user
from chirp.tornado.handlers import finish_handler, get_handler_by_id, handler_stats_string

logger = logging.getLogger("chirp.events")

# A queue nobody has polled for this long is garbage-collected.
DEFAULT_EVENT_QUEUE_TIMEOUT_SECS = 10 * 60
MAX_QUEUE_TIMEOUT_SECS = 7 * 24 * 60 * 60
EVENT_QUEUE_GC_FREQ_MSECS = 60 * 1000

# A long poll without events is answered with a heartbeat after 45 to
# 55 seconds; some routers drop HTTP connections idle for a minute.
HEARTBEAT_MIN_FREQ_SECS = 45
HEARTBEAT_JITTER_SECS = 10

MAIN_CHANNEL = "main"
LOCAL_TIMELINE_CHANNEL = "local_timeline"
HOME_TIMELINE_CHANNEL = "home_timeline"

ChannelName: TypeAlias = Literal["main", "local_timeline", "home_timeline"]

CHANNEL_EVENT_TYPES: dict[str, frozenset[str]] = {
    MAIN_CHANNEL: frozenset(
        {
            "mention",
            "unread_mention",
            "notification",
            "unread_notification",
            "read_all_unread_mentions",
            "read_all_notifications",
            "muted_users",
        }
    ),
    LOCAL_TIMELINE_CHANNEL: frozenset({"note"}),
    HOME_TIMELINE_CHANNEL: frozenset({"note"}),
}


class ClientDescriptor:
    # Saved across restarts along with the event queue itself.
    SAVED_FIELDS = (
        "user_profile_id",
        "channel",
        "client_type_name",
        "queue_timeout",
        "live_since",
        "last_connection_time",
    )

    def __init__(
        self,
        user_profile_id: int,
        event_queue: "EventQueue",
        channel: str,
        client_type_name: str,
        lifespan_secs: int = 0,
    ) -> None:
        # Queues survive a Tornado restart through to_dict/from_dict.
        self.user_profile_id = user_profile_id
        self.event_queue = event_queue
        self.channel = channel
        self.client_type_name = client_type_name
        self.queue_timeout = min(
            lifespan_secs or DEFAULT_EVENT_QUEUE_TIMEOUT_SECS, MAX_QUEUE_TIMEOUT_SECS
        )
        self.live_since = self.last_connection_time = time.time()

        # The long poll currently waiting on this queue.
        self.long_poll_handler_id: int | None = None
        self.long_poll_client: str | None = None
        self.ioloop: tornado.ioloop.IOLoop | None = None
        self.heartbeat_handle: object | None = None

    def to_dict(self) -> dict[str, Any]:
        saved = {name: getattr(self, name) for name in self.SAVED_FIELDS}
        saved["event_queue"] = self.event_queue.to_dict()
        return saved

    @classmethod
    def from_dict(cls, d: MutableMapping[str, Any]) -> "ClientDescriptor":
        """Also builds new queues, from a dict without `live_since`."""
        client = cls(
            d["user_profile_id"],
            EventQueue.from_dict(d["event_queue"]),
            d.get("channel", MAIN_CHANNEL),
            d["client_type_name"],
            d["queue_timeout"],
        )
        client.last_connection_time = d["last_connection_time"]
        client.live_since = d.get("live_since", client.last_connection_time)
        return client

    @override
    def __repr__(self) -> str:
        return f"ClientDescriptor<{self.event_queue.id}>"

    def accepts_event(self, event: Mapping[str, Any], *, from_followee: bool = False) -> bool:
        """Whether `event` should be put on this queue.

        The channel decides which event types are wanted; the home
        timeline additionally only wants notes from the queue's owner
        or from users the owner follows (`from_followee`).  Anything
        left must then be visible to the queue's owner; if the mute
        state cannot be read, the event is dropped for this queue.
        """
        if event["type"] not in CHANNEL_EVENT_TYPES[self.channel]:
            return False
        if self.channel == HOME_TIMELINE_CHANNEL and not from_followee:
            return False
        try:
            return event_is_visible_to_user(self.user_profile_id, event)
        except MuteStateUnavailableError:
            logger.exception(
                "Dropped %s event for queue %s (%s): mute state unavailable",
                event["type"],
                self.event_queue.id,
                self.user_profile_id,
            )
            return False

    def deliver(self, event: Mapping[str, Any]) -> None:
        self.event_queue.push(event)
        self.answer_long_poll()

    def answer_long_poll(self) -> bool:
        """Answers the pending long poll, if any, with the queue's
        contents.  Returns whether there was one."""
        if self.long_poll_handler_id is None:
            return False
        try:
            finish_handler(
                self.long_poll_handler_id, self.event_queue.id, self.event_queue.contents()
            )
        except Exception:
            logger.exception("Could not finish the long poll on queue %s", self.event_queue.id)
        finally:
            self.detach_long_poll()
        return True

    def is_expired(self, now: float) -> bool:
        return (
            self.long_poll_handler_id is None
            and now - self.last_connection_time >= self.queue_timeout
        )

    def attach_long_poll(self, handler_id: int, client_name: str) -> None:
        handler = get_handler_by_id(handler_id)
        assert handler is not None
        handler.client_descriptor = self
        self.long_poll_handler_id = handler_id
        self.long_poll_client = client_name
        self.last_connection_time = time.time()

        # Called from the view's worker thread; timers belong to the
        # handler's loop.
        self.ioloop = handler.ioloop
        delay = HEARTBEAT_MIN_FREQ_SECS + random.randint(0, HEARTBEAT_JITTER_SECS)
        self.ioloop.add_callback(self.schedule_heartbeat, handler_id, delay)

    def schedule_heartbeat(self, handler_id: int, delay: float) -> None:
        assert self.ioloop is not None
        if self.long_poll_handler_id != handler_id:
            # Already answered.
            return

        def send_heartbeat() -> None:
            self.heartbeat_handle = None
            if self.long_poll_handler_id == handler_id:
                self.deliver(dict(type="heartbeat"))

        self.heartbeat_handle = self.ioloop.call_later(delay, send_heartbeat)

    def detach_long_poll(self, client_closed: bool = False) -> None:
        if self.long_poll_handler_id is not None:
            handler = get_handler_by_id(self.long_poll_handler_id)
            if handler is not None:
                handler.client_descriptor = None
            if client_closed:
                logger.info(
                    "Client disconnected for queue %s (%s via %s)",
                    self.event_queue.id,
                    self.user_profile_id,
                    self.long_poll_client,
                )
        self.long_poll_handler_id = None
        self.long_poll_client = None
        if self.heartbeat_handle is not None:
            assert self.ioloop is not None
            self.ioloop.add_callback(self.ioloop.remove_timeout, self.heartbeat_handle)
            self.heartbeat_handle = None

    def close(self) -> None:
        # remove_event_queues expects idle queues.
        self.answer_long_poll()
        remove_event_queues({self.event_queue.id}, {self.user_profile_id})


class EventQueue:
    def __init__(self, id: str) -> None:
        self.id = id
        self.queue: deque[dict[str, Any]] = deque()
        self.next_event_id = 0
        # Clients must acknowledge at least this event id.
        self.newest_pruned_id = -1

    def to_dict(self) -> dict[str, Any]:
        return dict(
            id=self.id,
            next_event_id=self.next_event_id,
            newest_pruned_id=self.newest_pruned_id,
            queue=list(self.queue),
        )

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "EventQueue":
        event_queue = cls(d["id"])
        event_queue.next_event_id = d["next_event_id"]
        event_queue.newest_pruned_id = d.get("newest_pruned_id", -1)
        event_queue.queue = deque(d["queue"])
        return event_queue

    def push(self, orig_event: Mapping[str, Any]) -> None:
        # The same event object goes to many queues; each gets its own
        # copy numbered in this queue's sequence.
        event = {**orig_event, "id": self.next_event_id}
        self.next_event_id += 1
        self.queue.append(event)

    def empty(self) -> bool:
        return not self.queue

    def prune(self, through_id: int) -> None:
        while self.queue and self.queue[0]["id"] <= through_id:
            self.newest_pruned_id = self.queue.popleft()["id"]

    def contents(self) -> list[dict[str, Any]]:
        return list(self.queue)


# Queue id -> queue, and user id -> that user's queues.
clients: dict[str, ClientDescriptor] = {}
user_clients: dict[int, list[ClientDescriptor]] = {}


def clear_client_event_queues_for_testing() -> None:
    assert settings.TEST_SUITE
    clients.clear()
    user_clients.clear()


def access_user_queue(user_id: int, queue_id: str) -> ClientDescriptor:
    client = clients.get(queue_id)
    if client is None:
        raise BadEventQueueIdError(queue_id)
    if client.user_profile_id != user_id:
        logger.warning(
            "User %d is not authorized for queue %s (%d via %s)",
            user_id,
            queue_id,
            client.user_profile_id,
            client.long_poll_client,
        )
        # Indistinguishable from an unknown queue for the caller.
        raise BadEventQueueIdError(queue_id)
    return client


def queues_for_user(user_profile_id: int) -> list[ClientDescriptor]:
    return user_clients.get(user_profile_id, [])


def index_client(client: ClientDescriptor) -> None:
    user_clients.setdefault(client.user_profile_id, []).append(client)


def allocate_client_descriptor(new_queue_data: MutableMapping[str, Any]) -> ClientDescriptor:
    queue_id = str(uuid.uuid4())
    new_queue_data["event_queue"] = EventQueue(queue_id).to_dict()
    client = ClientDescriptor.from_dict(new_queue_data)
    clients[queue_id] = client
    index_client(client)
    logger.info(
        "Allocated %s queue %s for user %s", client.channel, queue_id, client.user_profile_id
    )
    return client


def remove_event_queues(to_remove: AbstractSet[str], affected_users: AbstractSet[int]) -> None:
    for user_id in affected_users:
        remaining = [
            client
            for client in user_clients.get(user_id, [])
            if client.event_queue.id not in to_remove
        ]
        if remaining:
            user_clients[user_id] = remaining
        else:
            user_clients.pop(user_id, None)

    for queue_id in to_remove:
        del clients[queue_id]


def gc_event_queues(port: int) -> None:
    # Compared against the wall-clock times stored in the queues.
    now = time.time()
    expired = {
        queue_id: client.user_profile_id
        for queue_id, client in clients.items()
        if client.is_expired(now)
    }
    remove_event_queues(expired.keys(), set(expired.values()))

    if settings.PRODUCTION:
        logger.info(
            "Tornado %d garbage-collected %d event queues of %d users in %.3fs;"
            " %d queues left, %s",
            port,
            len(expired),
            len(set(expired.values())),
            time.time() - now,
            len(clients),
            handler_stats_string(),
        )


def persistent_queue_filename(port: int, last: bool = False) -> str:
    suffix = f".{port}.last" if last else f".{port}"
    return settings.JSON_PERSISTENT_QUEUE_FILENAME_PATTERN % (suffix,)


def dump_event_queues(port: int) -> None:
    start = time.perf_counter()
    saved = [(queue_id, client.to_dict()) for queue_id, client in clients.items()]
    with open(persistent_queue_filename(port), "wb") as f:
        f.write(orjson.dumps(saved))
    if clients or settings.PRODUCTION:
        logger.info(
            "Tornado %d saved %d event queues in %.3fs",
            port,
            len(clients),
            time.perf_counter() - start,
        )


def load_event_queues(port: int) -> None:
    start = time.perf_counter()
    try:
        with open(persistent_queue_filename(port), "rb") as f:
            saved = orjson.loads(f.read())
        restored = {queue_id: ClientDescriptor.from_dict(d) for queue_id, d in saved}
    except FileNotFoundError:
        return
    except (orjson.JSONDecodeError, KeyError, TypeError, ValueError):
        # Clients re-register when their queue is unknown.
        logger.exception("Tornado %d could not restore its saved event queues", port)
        return

    clients.update(restored)
    for client in restored.values():
        index_client(client)
    logger.info(
        "Tornado %d restored %d event queues in %.3fs",
        port,
        len(restored),
        time.perf_counter() - start,
    )


async def setup_event_queue(port: int) -> None:
    if not settings.TEST_SUITE:
        load_event_queues(port)
        autoreload.add_reload_hook(lambda: dump_event_queues(port))

    # Keep the file a restart was restored from for debugging, out of
    # the way of the next dump.
    with suppress(OSError):
        os.rename(persistent_queue_filename(port), persistent_queue_filename(port, last=True))

    tornado.ioloop.PeriodicCallback(
        lambda: gc_event_queues(port), EVENT_QUEUE_GC_FREQ_MSECS
    ).start()


def fetch_events(
    queue_id: str,
    dont_block: bool,
    last_event_id: int | None,
    user_profile_id: int,
    client_type_name: str,
    handler_id: int | None,
) -> dict[str, Any]:
    """Acknowledges the events through `last_event_id` and returns
    what the get_events view should do: answer right away ("response"),
    fail ("error"), or leave the request open ("async")."""
    try:
        if last_event_id is None:
            raise JsonableError(_("Missing 'last_event_id' argument"))
        client = access_user_queue(user_profile_id, queue_id)
        event_queue = client.event_queue
        if last_event_id < event_queue.newest_pruned_id:
            raise JsonableError(
                _("An event newer than {event_id} has already been pruned!").format(
                    event_id=last_event_id
                )
            )
        event_queue.prune(last_event_id)
        if last_event_id != event_queue.newest_pruned_id:
            raise JsonableError(
                _("Event {event_id} was not in this queue").format(event_id=last_event_id)
            )
    except JsonableError as e:
        return dict(type="error", exception=e)

    # A client polls a queue with one request at a time; an older
    # request still waiting is answered now.
    was_connected = client.answer_long_poll()

    if dont_block or not event_queue.empty():
        events = event_queue.contents()
        if len(events) == 1:
            extra_log_data = f"[{queue_id}/1/{events[0]['type']}]"
        else:
            extra_log_data = f"[{queue_id}/{len(events)}]"
        if was_connected:
            extra_log_data += " [was connected]"
        return dict(type="response", response=dict(events=events), extra_log_data=extra_log_data)

    if was_connected:
        logger.info(
            "Replaced the long poll on queue %s (%s via %s)",
            queue_id,
            user_profile_id,
            client_type_name,
        )
    assert handler_id is not None
    client.attach_long_poll(handler_id, client_type_name)
    return dict(type="async")


def prefetch_mute_state(event: Mapping[str, Any], user_ids: Sequence[int]) -> None:
    """Loads the muted-user sets of the recipients that have queues
    with a single query, ahead of their queues' visibility checks."""
    if "note" not in event and "notification" not in event:
        return
    user_ids = [user_id for user_id in user_ids if user_id in user_clients]
    try:
        bulk_get_muted_user_ids(user_ids)
    except DatabaseError:
        # accepts_event reads each set again and drops what it cannot
        # check.
        logger.warning("Could not prefetch mutes for %s event", event["type"], exc_info=True)


def process_event(event: Mapping[str, Any], users: Sequence[int]) -> None:
    prefetch_mute_state(event, users)
    for user_profile_id in users:
        for client in queues_for_user(user_profile_id):
            if client.accepts_event(event):
                client.deliver(event)


def process_note_event(event: Mapping[str, Any], users: Iterable[Mapping[str, Any]]) -> None:
    """`users` are dicts with the user's `id` and whether the note
    belongs in that user's home timeline."""
    users = list(users)
    prefetch_mute_state(event, [user_data["id"] for user_data in users])
    for user_data in users:
        for client in queues_for_user(user_data["id"]):
            if client.accepts_event(event, from_followee=user_data["home_timeline"]):
                client.deliver(event)


def process_notification(notice: Mapping[str, Any]) -> None:
    event: Mapping[str, Any] = notice["event"]
    users: list[Any] = notice["users"]
    start = time.perf_counter()

    if event["type"] == "note":
        process_note_event(event, users)
    elif event["type"] == "cleanup_queue":
        try:
            client = access_user_queue(users[0], event["queue_id"])
        except BadEventQueueIdError:
            logger.info(
                "Ignoring cleanup request for bad queue id %s (%d)", event["queue_id"], users[0]
            )
        else:
            client.close()
    else:
        process_event(event, users)

    logger.debug(
        "Processed %s event for %d users in %dms",
        event["type"],
        len(users),
        1000 * (time.perf_counter() - start),
    )
