from chirp.actions.notes import check_send_note, get_note_event_users
from chirp.lib.mention import possible_mentions
from chirp.lib.test_classes import ChirpTestCase
from chirp.models import Following, Note, Reaction
from chirp.models.notes import MAX_NOTE_LENGTH


class SendNoteTest(ChirpTestCase):
    def test_send_note(self) -> None:
        bob = self.example_user("bob")
        with self.assertLogs("chirp.notes", "INFO") as logs:
            note_id = self.post_note(bob, "  hello world  ")
        note = Note.objects.get(id=note_id)
        self.assertEqual(note.sender_id, bob.id)
        self.assertEqual(note.content, "hello world")
        self.assertIsNone(note.renote_id)
        self.assertEqual(logs.output, [f"INFO:chirp.notes:bob@example.com sent note {note_id}"])

    def test_send_note_invalid(self) -> None:
        bob = self.example_user("bob")
        result = self.api_post(bob, "/api/v1/notes", {"content": "   "})
        self.assert_json_error(result, "Note must not be empty")

        result = self.api_post(bob, "/api/v1/notes", {"content": "x" * (MAX_NOTE_LENGTH + 1)})
        self.assert_json_error(result, f"Note is too long (limit: {MAX_NOTE_LENGTH} characters)")

        result = self.api_post(bob, "/api/v1/notes", {"content": "", "renote_id": "9999"})
        self.assert_json_error(result, "Invalid note(s)", status_code=404)
        self.assertFalse(Note.objects.exists())

    def test_renote_with_content(self) -> None:
        bob = self.example_user("bob")
        carol = self.example_user("carol")
        note_id = self.post_note(carol, "original")
        renote_id = self.post_note(bob, "worth reading", renote_id=note_id)
        renote = Note.objects.get(id=renote_id)
        self.assertTrue(renote.is_renote())
        self.assertEqual(renote.renote_id, note_id)

    def test_possible_mentions(self) -> None:
        self.assertEqual(possible_mentions("@alice hi"), {"alice"})
        self.assertEqual(possible_mentions("hi @Alice, @bob_2!"), {"alice", "bob_2"})
        self.assertEqual(possible_mentions("mail alice@example.com"), set())
        self.assertEqual(possible_mentions("@@alice"), set())
        self.assertEqual(possible_mentions("no mentions"), set())

    def test_mentioned_users_stored(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")
        note = check_send_note(bob, "@alice @carol @alice @ghost")
        self.assertEqual(
            sorted(note.mentioned_users.values_list("id", flat=True)), [alice.id, carol.id]
        )

    def test_note_event_users(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")
        dave = self.example_user("dave")
        self.follow(alice, bob)

        users = {user["id"]: user["home_timeline"] for user in get_note_event_users(bob)}
        self.assertEqual(
            users, {alice.id: True, bob.id: True, carol.id: False, dave.id: False}
        )

    def test_note_event(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")

        with self.capture_send_event_calls(expected_num_events=5) as events:
            note = check_send_note(bob, "@alice hi")

        self.assertEqual(
            [e["event"]["type"] for e in events],
            ["mention", "unread_mention", "notification", "unread_notification", "note"],
        )
        note_event = events[4]["event"]
        self.assertEqual(note_event["note"]["id"], note.id)
        self.assertEqual(note_event["note"]["mentioned_user_ids"], [alice.id])
        self.assertEqual(events[2]["event"]["notification"]["type"], "mention")
        self.assertEqual(events[2]["event"]["notification"]["user_id"], bob.id)


class DeleteNoteTest(ChirpTestCase):
    def test_delete_note(self) -> None:
        bob = self.example_user("bob")
        carol = self.example_user("carol")
        note_id = self.post_note(bob, "oops")

        result = self.api_delete(carol, f"/api/v1/notes/{note_id}")
        self.assert_json_error(result, "Access denied", status_code=403)
        self.assertTrue(Note.objects.filter(id=note_id).exists())

        result = self.api_delete(bob, f"/api/v1/notes/{note_id}")
        self.assert_json_success(result)
        self.assertFalse(Note.objects.filter(id=note_id).exists())

        result = self.api_delete(bob, f"/api/v1/notes/{note_id}")
        self.assert_json_error(result, "Invalid note(s)", status_code=404)


class ReactionTest(ChirpTestCase):
    def test_add_and_remove_reaction(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        note_id = self.post_note(alice, "hello")

        url = f"/api/v1/notes/{note_id}/reactions"
        self.react(bob, note_id, " +1 ")
        self.assertEqual(Reaction.objects.get(user_profile=bob).reaction, "+1")

        result = self.api_post(bob, url, {"reaction": "like"})
        self.assert_json_error(result, "Reaction already exists.")

        self.assert_json_success(self.api_delete(bob, url))
        self.assertFalse(Reaction.objects.exists())
        result = self.api_delete(bob, url)
        self.assert_json_error(result, "Reaction doesn't exist.")

        result = self.api_post(bob, url, {"reaction": ""})
        self.assert_json_error(result, "reaction cannot be blank")

    def test_own_reaction_does_not_notify(self) -> None:
        alice = self.example_user("alice")
        note_id = self.post_note(alice, "hello")
        self.react(alice, note_id)
        self.assertEqual(self.notification_list(alice), [])
        self.assertEqual(self.unread_state(alice), (False, False))


class FollowTest(ChirpTestCase):
    def test_follow(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")

        self.follow(alice, bob)
        self.assertTrue(Following.objects.filter(follower=alice, followee=bob).exists())
        notifications = self.notification_list(bob)
        self.assertEqual([(n["type"], n["user_id"]) for n in notifications], [("follow", alice.id)])

        result = self.api_post(alice, f"/api/v1/users/{bob.id}/follow")
        self.assert_json_error(result, "Already following this user")
        result = self.api_post(alice, f"/api/v1/users/{alice.id}/follow")
        self.assert_json_error(result, "Cannot follow self")
        result = self.api_post(alice, "/api/v1/users/9999/follow")
        self.assert_json_error(result, "No such user")

        self.assert_json_success(self.api_delete(alice, f"/api/v1/users/{bob.id}/follow"))
        self.assertFalse(Following.objects.exists())
        result = self.api_delete(alice, f"/api/v1/users/{bob.id}/follow")
        self.assert_json_error(result, "Not following this user")
