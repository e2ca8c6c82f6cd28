import time
from typing import Any
from unittest import mock

import orjson
from django.db import DatabaseError
from django.conf import settings
from django.test import override_settings

from chirp.lib.test_classes import ChirpTestCase
from chirp.tornado.event_queue import (
    ClientDescriptor,
    EventQueue,
    allocate_client_descriptor,
    clients,
    gc_event_queues,
    process_notification,
    user_clients,
)


def allocate(user_id: int, channel: str = "main", queue_timeout: int = 0) -> ClientDescriptor:
    return allocate_client_descriptor(
        dict(
            user_profile_id=user_id,
            channel=channel,
            client_type_name="website",
            queue_timeout=queue_timeout,
            last_connection_time=time.time(),
        )
    )


class EventQueueTest(ChirpTestCase):
    def test_one_event(self) -> None:
        queue = EventQueue("1")
        queue.push({"type": "muted_users", "muted_users": []})
        self.assertFalse(queue.empty())
        self.assertEqual(queue.contents(), [{"id": 0, "type": "muted_users", "muted_users": []}])

    def test_prune(self) -> None:
        queue = EventQueue("1")
        for i in range(3):
            queue.push({"type": "heartbeat", "n": i})
        queue.prune(1)
        self.assertEqual(queue.contents(), [{"id": 2, "type": "heartbeat", "n": 2}])
        self.assertEqual(queue.newest_pruned_id, 1)

    def test_serialization(self) -> None:
        alice = self.example_user("alice")
        client = allocate(alice.id, channel="home_timeline", queue_timeout=120)
        client.event_queue.push({"type": "note", "note": {"id": 1}})

        restored = ClientDescriptor.from_dict(orjson.loads(orjson.dumps(client.to_dict())))
        self.assertEqual(restored.to_dict(), client.to_dict())
        self.assertEqual(restored.channel, "home_timeline")
        self.assertEqual(restored.queue_timeout, 120)

    def test_gc(self) -> None:
        alice = self.example_user("alice")
        client = allocate(alice.id)
        fresh = allocate(alice.id)
        client.last_connection_time = time.time() - client.queue_timeout - 1

        gc_event_queues(9800)
        self.assertNotIn(client.event_queue.id, clients)
        self.assertIn(fresh.event_queue.id, clients)
        self.assertEqual(user_clients[alice.id], [fresh])


class ChannelTest(ChirpTestCase):
    def test_register(self) -> None:
        alice = self.example_user("alice")
        with self.assertLogs("chirp.events", "INFO") as logs:
            result = self.api_post(alice, "/api/v1/register", {"channel": "local_timeline"})
        data = self.assert_json_success(result)
        self.assertEqual(data["last_event_id"], -1)
        client = clients[data["queue_id"]]
        self.assertEqual(client.channel, "local_timeline")
        self.assertEqual(client.user_profile_id, alice.id)
        self.assertIn("Allocated local_timeline queue", logs.output[0])

        result = self.api_post(alice, "/api/v1/register", {"channel": "bogus"})
        self.assertEqual(result.status_code, 400)

    def test_channels_get_their_event_types(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        self.follow(alice, bob)

        main = self.register_queue(alice, "main")
        local = self.register_queue(alice, "local_timeline")
        home = self.register_queue(alice, "home_timeline")

        self.post_note(bob, "@alice hi")
        self.post_note(self.example_user("carol"), "hello")

        self.assertEqual(
            self.get_queue_event_types(alice, main),
            ["mention", "unread_mention", "notification", "unread_notification"],
        )
        self.assertEqual(self.get_queue_event_types(alice, local), ["note", "note"])
        home_events = self.get_queue_events(alice, home)
        self.assertEqual([e["note"]["sender_id"] for e in home_events], [bob.id])

    def test_events_from_muted_user_dropped(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")

        alice_main = self.register_queue(alice, "main")
        alice_local = self.register_queue(alice, "local_timeline")
        bob_local = self.register_queue(bob, "local_timeline")

        self.mute(alice, carol)
        self.assertEqual(self.get_queue_event_types(alice, alice_main), ["muted_users"])

        carol_note = self.post_note(carol, "@alice hi")
        self.post_note(bob, renote_id=carol_note)
        bob_note = self.post_note(bob, "from bob")

        # Dropped for Alice only.
        self.assertEqual(self.get_queue_event_types(alice, alice_main), ["muted_users"])
        self.assertEqual(
            [e["note"]["id"] for e in self.get_queue_events(alice, alice_local)], [bob_note]
        )
        self.assert_length(self.get_queue_events(bob, bob_local), 3)

    def test_reaction_from_muted_user_dropped(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")

        note_id = self.post_note(alice, "hello")
        self.mute(alice, carol)
        queue_id = self.register_queue(alice, "main")

        self.react(carol, note_id)
        self.assertEqual(self.get_queue_events(alice, queue_id), [])
        self.react(bob, note_id)
        self.assertEqual(
            self.get_queue_event_types(alice, queue_id), ["notification", "unread_notification"]
        )

    def test_mute_state_unavailable_drops_event(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        client = allocate(alice.id, channel="local_timeline")
        note = dict(
            id=1,
            sender_id=bob.id,
            content="hi",
            renote_id=None,
            renote=None,
            mentioned_user_ids=[],
            timestamp=0,
        )
        notice: dict[str, Any] = dict(
            event=dict(type="note", note=note), users=[dict(id=alice.id, home_timeline=False)]
        )

        with (
            mock.patch(
                "chirp.lib.muted_users.get_muted_user_ids",
                side_effect=DatabaseError("database is locked"),
            ),
            self.assertLogs("chirp.muted_users", "WARNING"),
            self.assertLogs("chirp.events", "ERROR") as logs,
        ):
            process_notification(notice)

        self.assertTrue(client.event_queue.empty())
        self.assertIn(
            f"Dropped note event for queue {client.event_queue.id} ({alice.id}): mute state unavailable",
            logs.output[0],
        )

        # Once the mute state can be read again, events flow normally.
        process_notification(notice)
        self.assertEqual([e["id"] for e in client.event_queue.contents()], [0])

    def test_get_events_errors(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        queue_id = self.register_queue(alice)

        with self.assertLogs("chirp.events", "WARNING") as logs:
            result = self.api_get(
                bob,
                "/api/v1/events",
                {"queue_id": queue_id, "last_event_id": "-1", "dont_block": "true"},
            )
        self.assertIn(f"User {bob.id} is not authorized for queue {queue_id}", logs.output[0])
        self.assert_json_error(result, f"Bad event queue ID: {queue_id}")

        result = self.api_get(alice, "/api/v1/events", {"queue_id": queue_id, "dont_block": "true"})
        self.assert_json_error(result, "Missing 'last_event_id' argument")

    def test_cleanup_queue(self) -> None:
        alice = self.example_user("alice")
        queue_id = self.register_queue(alice)
        self.assertIn(queue_id, clients)

        self.assert_json_success(self.api_delete(alice, "/api/v1/events", {"queue_id": queue_id}))
        self.assertNotIn(queue_id, clients)
        self.assertNotIn(alice.id, user_clients)

        # A closed queue gets nothing more.
        self.post_note(self.example_user("bob"), "@alice hi")
        result = self.api_delete(alice, "/api/v1/events", {"queue_id": queue_id})
        self.assert_json_error(result, f"Bad event queue ID: {queue_id}")

    @override_settings(USING_TORNADO=True)
    def test_register_through_tornado(self) -> None:
        alice = self.example_user("alice")
        with mock.patch("chirp.tornado.django_api.requests_client") as m:
            m.return_value.post.return_value.json.return_value = {"queue_id": "abc"}
            queue_id = self.register_queue(alice, "home_timeline")
        self.assertEqual(queue_id, "abc")
        url = m.return_value.post.call_args[0][0]
        self.assertTrue(url.endswith("/api/v1/events/internal"))
        self.assertEqual(m.return_value.post.call_args[1]["data"]["channel"], "home_timeline")

    def test_mute_state_loaded_once_per_event(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")
        dave = self.example_user("dave")
        self.mute(bob, carol)
        queues = {
            user.id: allocate(user.id, channel="local_timeline") for user in [alice, bob, dave]
        }
        note = dict(
            id=1,
            sender_id=carol.id,
            content="hi",
            renote_id=None,
            renote=None,
            mentioned_user_ids=[],
            timestamp=0,
        )
        notice: dict[str, Any] = dict(
            event=dict(type="note", note=note),
            users=[dict(id=user.id, home_timeline=False) for user in [alice, bob, carol, dave]],
        )

        # One query for every recipient with a queue, none per queue.
        with self.assertNumQueries(1):
            process_notification(notice)
        self.assertEqual(len(queues[alice.id].event_queue.contents()), 1)
        self.assertTrue(queues[bob.id].event_queue.empty())
        self.assertEqual(len(queues[dave.id].event_queue.contents()), 1)

        with self.assertNumQueries(0):
            process_notification(notice)

    def test_internal_endpoints_check_secret(self) -> None:
        result = self.client.post("/notify_tornado", {"data": "{}", "secret": "wrong"})
        self.assert_json_error(result, "Access denied", status_code=403)

        result = self.client.get("/notify_tornado")
        self.assertEqual(result.status_code, 405)

        # The secret is right, but the request was not routed through
        # Tornado.
        with self.assertRaisesRegex(RuntimeError, "notify called outside of Tornado"):
            self.client.post("/notify_tornado", {"data": "{}", "secret": settings.SHARED_SECRET})
