from django.http import HttpRequest, HttpResponse

from chirp.actions.follows import do_follow_user, do_unfollow_user
from chirp.lib.response import json_success
from chirp.lib.typed_endpoint import PathOnly, typed_endpoint
from chirp.lib.users import access_user_by_id, get_own_user_dict
from chirp.models import UserProfile


def get_profile(request: HttpRequest, user_profile: UserProfile) -> HttpResponse:
    return json_success(request, data=get_own_user_dict(user_profile))


@typed_endpoint
def follow_user(
    request: HttpRequest, user_profile: UserProfile, *, user_id: PathOnly[int]
) -> HttpResponse:
    followee = access_user_by_id(user_profile, user_id)
    do_follow_user(user_profile, followee)
    return json_success(request)


@typed_endpoint
def unfollow_user(
    request: HttpRequest, user_profile: UserProfile, *, user_id: PathOnly[int]
) -> HttpResponse:
    followee = access_user_by_id(user_profile, user_id, allow_deactivated=True)
    do_unfollow_user(user_profile, followee)
    return json_success(request)
