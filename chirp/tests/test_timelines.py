from unittest import mock

from django.db import DatabaseError

from chirp.actions.muted_users import do_mute_user
from chirp.lib.exceptions import ApiParamValidationError, MuteStateUnavailableError
from chirp.lib.test_classes import ChirpTestCase
from chirp.lib.timelines import MAX_TIMELINE_LIMIT, fetch_local_timeline, fetch_mentions
from chirp.models import Note


class LocalTimelineTest(ChirpTestCase):
    def test_excludes_muted_sender(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")

        alice_note = self.post_note(alice, "hello from alice")
        bob_note = self.post_note(bob, "hello from bob")
        carol_note = self.post_note(carol, "hello from carol")

        url = "/api/v1/notes/local_timeline"
        self.assertEqual(self.note_ids(alice, url), [carol_note, bob_note, alice_note])

        self.mute(alice, carol)
        self.assertEqual(self.note_ids(alice, url), [bob_note, alice_note])
        # Only Alice's view changes.
        self.assertEqual(self.note_ids(bob, url), [carol_note, bob_note, alice_note])
        self.assertEqual(self.note_ids(carol, url), [carol_note, bob_note, alice_note])

        self.unmute(alice, carol)
        self.assertEqual(self.note_ids(alice, url), [carol_note, bob_note, alice_note])

    def test_excludes_renote_of_muted_user(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")
        dave = self.example_user("dave")

        carol_note = self.post_note(carol, "original")
        bob_renote = self.post_note(bob, renote_id=carol_note)
        dave_renote = self.post_note(dave, "quoting bob", renote_id=bob_renote)
        bob_note = self.post_note(bob, "unrelated")

        self.mute(alice, carol)
        url = "/api/v1/notes/local_timeline"
        self.assertEqual(self.note_ids(alice, url), [bob_note])
        self.assertEqual(
            self.note_ids(dave, url), [bob_note, dave_renote, bob_renote, carol_note]
        )

    def test_renote_payload(self) -> None:
        bob = self.example_user("bob")
        carol = self.example_user("carol")

        carol_note = self.post_note(carol, "original")
        bob_renote = self.post_note(bob, renote_id=carol_note)

        result = self.api_get(bob, "/api/v1/notes/local_timeline", {"limit": "1"})
        notes = self.assert_json_success(result)["notes"]
        self.assert_length(notes, 1)
        self.assertEqual(notes[0]["id"], bob_renote)
        self.assertEqual(notes[0]["content"], "")
        self.assertEqual(notes[0]["renote_id"], carol_note)
        self.assertEqual(notes[0]["renote"]["id"], carol_note)
        self.assertEqual(notes[0]["renote"]["sender_id"], carol.id)
        self.assertIsNone(notes[0]["renote"]["renote"])

    def test_renote_of_deleted_note_is_hidden(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")

        carol_note = self.post_note(carol, "soon gone")
        bob_renote = self.post_note(bob, renote_id=carol_note)
        url = "/api/v1/notes/local_timeline"
        self.assertEqual(self.note_ids(alice, url), [bob_renote, carol_note])

        self.assert_json_success(self.api_delete(carol, f"/api/v1/notes/{carol_note}"))
        self.assertTrue(Note.objects.filter(id=bob_renote).exists())
        self.assertEqual(self.note_ids(alice, url), [])
        self.assertEqual(self.note_ids(bob, url), [])

    def test_limit_is_filled_past_hidden_rows(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")

        bob_notes = [self.post_note(bob, f"bob {i}") for i in range(3)]
        carol_note = self.post_note(carol, "original")
        # Renotes of Carol's note are not removed by the query itself,
        # only by the visibility pass afterwards.
        deleted = self.post_note(carol, "gone")
        for i in range(3):
            self.post_note(bob, renote_id=deleted)
        self.assert_json_success(self.api_delete(carol, f"/api/v1/notes/{deleted}"))

        self.mute(alice, carol)
        ids = self.note_ids(alice, "/api/v1/notes/local_timeline", {"limit": "2"})
        self.assertEqual(ids, [bob_notes[2], bob_notes[1]])
        self.assertNotIn(carol_note, ids)

    def test_pagination(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")

        note_ids = [self.post_note(bob, f"note {i}") for i in range(5)]
        url = "/api/v1/notes/local_timeline"

        self.assertEqual(
            self.note_ids(alice, url, {"limit": "2"}), [note_ids[4], note_ids[3]]
        )
        self.assertEqual(
            self.note_ids(alice, url, {"limit": "2", "until_id": str(note_ids[3])}),
            [note_ids[2], note_ids[1]],
        )
        self.assertEqual(
            self.note_ids(alice, url, {"since_id": str(note_ids[2])}),
            [note_ids[4], note_ids[3]],
        )

    def test_invalid_limit(self) -> None:
        alice = self.example_user("alice")
        result = self.api_get(alice, "/api/v1/notes/local_timeline", {"limit": "0"})
        self.assertIn("is too small", self.get_json_error(result))
        result = self.api_get(alice, "/api/v1/notes/local_timeline", {"limit": "101"})
        self.assertIn("is too large", self.get_json_error(result))

        # Internal callers get the same errors.
        with self.assertRaisesRegex(ApiParamValidationError, "limit is too small"):
            fetch_local_timeline(alice, limit=0)
        with self.assertRaisesRegex(ApiParamValidationError, "limit is too large"):
            fetch_local_timeline(alice, limit=MAX_TIMELINE_LIMIT + 1)

    def test_empty_result(self) -> None:
        alice = self.example_user("alice")
        carol = self.example_user("carol")
        self.post_note(carol, "only carol")
        self.mute(alice, carol)
        self.assertEqual(self.note_ids(alice, "/api/v1/notes/local_timeline"), [])

    def test_mute_state_unavailable(self) -> None:
        alice = self.example_user("alice")
        self.post_note(self.example_user("bob"), "hello")

        with (
            mock.patch(
                "chirp.lib.muted_users.get_muted_user_ids",
                side_effect=DatabaseError("database is locked"),
            ),
            self.assertLogs("chirp.muted_users", "WARNING"),
            self.assertRaises(MuteStateUnavailableError),
        ):
            fetch_local_timeline(alice, limit=10)


class HomeTimelineTest(ChirpTestCase):
    def test_home_timeline(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")
        dave = self.example_user("dave")

        self.follow(alice, bob)
        self.follow(alice, carol)

        alice_note = self.post_note(alice, "mine")
        bob_note = self.post_note(bob, "from bob")
        carol_note = self.post_note(carol, "from carol")
        self.post_note(dave, "from dave")
        bob_renote = self.post_note(bob, renote_id=carol_note)

        url = "/api/v1/notes/home_timeline"
        self.assertEqual(
            self.note_ids(alice, url), [bob_renote, carol_note, bob_note, alice_note]
        )

        self.mute(alice, carol)
        self.assertEqual(self.note_ids(alice, url), [bob_note, alice_note])


class MentionsTest(ChirpTestCase):
    def test_mentions(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")

        bob_note = self.post_note(bob, "@alice hi")
        carol_note = self.post_note(carol, "@alice hi")
        self.post_note(bob, "no mention here")
        self.post_note(bob, "alice@example.com is not a mention")

        url = "/api/v1/notes/mentions"
        self.assertEqual(self.note_ids(alice, url), [carol_note, bob_note])

        self.mute(alice, carol)
        self.assertEqual(self.note_ids(alice, url), [bob_note])
        self.assertEqual(
            [note["id"] for note in fetch_mentions(alice, limit=10)], [bob_note]
        )

    def test_mention_payload(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")

        self.post_note(bob, "@Alice and @carol, and @nobody")
        result = self.api_get(alice, "/api/v1/notes/mentions")
        notes = self.assert_json_success(result)["notes"]
        self.assert_length(notes, 1)
        self.assertEqual(notes[0]["mentioned_user_ids"], [alice.id, carol.id])
        self.assertEqual(notes[0]["sender_id"], bob.id)
