from django.db import transaction
from django.utils.translation import gettext as _

from chirp.actions.notifications import do_create_notification
from chirp.lib.exceptions import JsonableError
from chirp.models import Following, Notification, UserProfile


@transaction.atomic(durable=True)
def do_follow_user(user_profile: UserProfile, followee: UserProfile) -> Following:
    if user_profile.id == followee.id:
        raise JsonableError(_("Cannot follow self"))
    if Following.objects.filter(follower=user_profile, followee=followee).exists():
        raise JsonableError(_("Already following this user"))

    following = Following.objects.create(follower=user_profile, followee=followee)
    do_create_notification(followee, user_profile, Notification.FOLLOW)
    return following


@transaction.atomic(durable=True)
def do_unfollow_user(user_profile: UserProfile, followee: UserProfile) -> None:
    deleted, _unused = Following.objects.filter(follower=user_profile, followee=followee).delete()
    if deleted == 0:
        raise JsonableError(_("Not following this user"))
