from unittest import mock

from django.db import DatabaseError

from chirp.actions.notes import check_send_note
from chirp.actions.unreads import do_flag_unread_mention, do_mark_all_mentions_as_read
from chirp.lib.exceptions import MuteStateUnavailableError
from chirp.lib.notes import build_note_dict
from chirp.lib.test_classes import ChirpTestCase
from chirp.lib.unreads import get_unread_state
from chirp.models import Note, UnreadState


class UnreadStateTest(ChirpTestCase):
    def test_mention_sets_flag(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")

        self.assertEqual(self.unread_state(alice), (False, False))
        self.post_note(bob, "@alice hi")
        self.assertEqual(self.unread_state(alice), (True, True))
        # Mentioning oneself flags nothing.
        self.post_note(bob, "@bob talking to myself")
        self.assertEqual(self.unread_state(bob), (False, False))

    def test_muted_mention_does_not_set_flag(self) -> None:
        alice = self.example_user("alice")
        carol = self.example_user("carol")

        self.mute(alice, carol)
        self.post_note(carol, "@alice hi")
        self.assertEqual(self.unread_state(alice), (False, False))
        self.assertEqual(
            get_unread_state(alice),
            {"has_unread_mentions": False, "has_unread_notifications": False},
        )

    def test_mark_all_mentions_as_read(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")

        self.post_note(bob, "@alice hi")
        result = self.api_post(alice, "/api/v1/users/me/mentions/mark_all_as_read")
        self.assert_json_success(result)
        self.assertEqual(self.unread_state(alice), (False, True))

        with self.capture_send_event_calls(expected_num_events=1) as events:
            do_mark_all_mentions_as_read(alice)
        self.assertEqual(events[0], dict(event=dict(type="read_all_unread_mentions"), users=[alice.id]))

    def test_flag_events(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")
        self.mute(alice, carol)

        with self.capture_send_event_calls(expected_num_events=2) as events:
            note = Note.objects.create(sender=bob, content="@alice hi")
            note_dict = build_note_dict(note)
            self.assertTrue(do_flag_unread_mention(alice.id, note_dict))
        self.assertEqual(
            [e["event"]["type"] for e in events], ["mention", "unread_mention"]
        )
        self.assertEqual(events[1]["event"]["note_id"], note.id)
        self.assertEqual(events[1]["users"], [alice.id])

        with self.capture_send_event_calls(expected_num_events=0):
            note = Note.objects.create(sender=carol, content="@alice hi")
            self.assertFalse(do_flag_unread_mention(alice.id, build_note_dict(note)))

    def test_users_without_unread_state(self) -> None:
        alice = self.example_user("alice")
        UnreadState.objects.filter(user_profile=alice).delete()
        self.assertEqual(self.unread_state(alice), (False, False))

    def test_mute_state_unavailable_fails_send(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")

        with (
            mock.patch(
                "chirp.lib.muted_users.get_muted_user_ids",
                side_effect=DatabaseError("database is locked"),
            ),
            self.assertLogs("chirp.muted_users", "WARNING"),
            self.assertRaises(MuteStateUnavailableError),
        ):
            check_send_note(bob, "@alice hi")

        self.assertFalse(Note.objects.exists())
        self.assertEqual(self.unread_state(alice), (False, False))
