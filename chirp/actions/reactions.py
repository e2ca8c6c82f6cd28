from django.db import transaction

from chirp.actions.notifications import do_create_notification
from chirp.lib.exceptions import ReactionDoesNotExistError, ReactionExistsError
from chirp.models import Note, Notification, Reaction, UserProfile


@transaction.atomic(durable=True)
def do_add_reaction(user_profile: UserProfile, note: Note, reaction: str) -> Reaction:
    if Reaction.objects.filter(user_profile=user_profile, note=note).exists():
        raise ReactionExistsError

    reaction_object = Reaction.objects.create(
        user_profile=user_profile, note=note, reaction=reaction
    )
    if note.sender_id != user_profile.id:
        do_create_notification(
            note.sender, user_profile, Notification.REACTION, note=note, reaction=reaction
        )
    return reaction_object


@transaction.atomic(durable=True)
def do_remove_reaction(user_profile: UserProfile, note: Note) -> None:
    deleted, _ = Reaction.objects.filter(user_profile=user_profile, note=note).delete()
    if deleted == 0:
        raise ReactionDoesNotExistError
