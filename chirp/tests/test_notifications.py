from chirp.actions.notifications import do_create_notification
from chirp.lib.exceptions import ApiParamValidationError
from chirp.lib.notifications import fetch_notifications
from chirp.lib.test_classes import ChirpTestCase
from chirp.models import Notification


class NotificationListTest(ChirpTestCase):
    def test_reactions_from_muted_user_are_hidden(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")

        self.mute(alice, carol)
        note_id = self.post_note(alice, "react to me")
        self.react(bob, note_id)
        self.react(carol, note_id)

        # Both rows are stored; Carol's is hidden when listed.
        self.assertEqual(Notification.objects.filter(recipient=alice).count(), 2)
        notifications = self.notification_list(alice)
        self.assert_length(notifications, 1)
        self.assertEqual(notifications[0]["type"], "reaction")
        self.assertEqual(notifications[0]["user_id"], bob.id)
        self.assertEqual(notifications[0]["note_id"], note_id)
        self.assertEqual(notifications[0]["note"]["id"], note_id)
        self.assertEqual(notifications[0]["reaction"], "like")
        self.assertFalse(notifications[0]["is_read"])

    def test_mute_hides_existing_notifications(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")

        self.post_note(carol, "@alice hello")
        self.follow(carol, alice)
        self.follow(bob, alice)
        self.assertEqual(
            [(n["type"], n["user_id"]) for n in self.notification_list(alice)],
            [("follow", bob.id), ("follow", carol.id), ("mention", carol.id)],
        )

        self.mute(alice, carol)
        self.assertEqual(
            [(n["type"], n["user_id"]) for n in self.notification_list(alice)],
            [("follow", bob.id)],
        )

        # Nothing was deleted; unmuting shows them again.
        self.unmute(alice, carol)
        self.assert_length(self.notification_list(alice), 3)

    def test_mention_inside_renote_of_muted_user(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")

        self.mute(alice, carol)
        carol_note = self.post_note(carol, "original")
        self.post_note(bob, "@alice look", renote_id=carol_note)

        self.assertEqual(self.notification_list(alice), [])
        self.assertEqual(self.note_ids(alice, "/api/v1/notes/mentions"), [])

    def test_renote_notification(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")

        note_id = self.post_note(alice, "original")
        renote_id = self.post_note(bob, renote_id=note_id)
        # Renoting one's own note notifies nobody.
        self.post_note(alice, renote_id=note_id)

        notifications = self.notification_list(alice)
        self.assert_length(notifications, 1)
        self.assertEqual(notifications[0]["type"], "renote")
        self.assertEqual(notifications[0]["user_id"], bob.id)
        self.assertEqual(notifications[0]["note_id"], renote_id)

    def test_pagination_skips_hidden(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")

        created = [
            do_create_notification(alice, notifier, Notification.FOLLOW)
            for notifier in [bob, carol, carol, bob, carol]
        ]
        self.mute(alice, carol)

        result = fetch_notifications(alice, limit=1)
        self.assertEqual([n["id"] for n in result], [created[3].id])
        result = fetch_notifications(alice, limit=1, until_id=created[3].id)
        self.assertEqual([n["id"] for n in result], [created[0].id])
        result = fetch_notifications(alice, limit=10, since_id=created[0].id)
        self.assertEqual([n["id"] for n in result], [created[3].id])

    def test_invalid_limit(self) -> None:
        alice = self.example_user("alice")
        with self.assertRaisesRegex(ApiParamValidationError, "limit is too small"):
            fetch_notifications(alice, limit=0)
        with self.assertRaisesRegex(ApiParamValidationError, "limit is too large"):
            fetch_notifications(alice, limit=101)

    def test_mark_as_read(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")

        self.follow(bob, alice)
        self.assertEqual(self.unread_state(alice), (False, True))

        result = self.api_get(
            alice, "/api/v1/users/me/notifications", {"mark_as_read": "true"}
        )
        notifications = self.assert_json_success(result)["notifications"]
        # The response shows the state before marking.
        self.assertFalse(notifications[0]["is_read"])
        self.assertTrue(self.notification_list(alice)[0]["is_read"])
        self.assertEqual(self.unread_state(alice), (False, False))

    def test_mark_all_as_read(self) -> None:
        alice = self.example_user("alice")
        bob = self.example_user("bob")
        carol = self.example_user("carol")

        self.follow(bob, alice)
        self.follow(carol, alice)
        result = self.api_post(alice, "/api/v1/users/me/notifications/mark_all_as_read")
        self.assertEqual(self.assert_json_success(result)["updated_count"], 2)
        self.assertEqual(self.unread_state(alice), (False, False))

        result = self.api_post(alice, "/api/v1/users/me/notifications/mark_all_as_read")
        self.assertEqual(self.assert_json_success(result)["updated_count"], 0)
