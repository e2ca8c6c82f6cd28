from django.http import HttpRequest, HttpResponse

from chirp.actions.muted_users import do_mute_user, do_unmute_user
from chirp.lib.exceptions import CannotMuteSelfError
from chirp.lib.muted_users import get_user_mutes
from chirp.lib.response import json_no_content, json_success
from chirp.lib.typed_endpoint import PathOnly, typed_endpoint
from chirp.lib.users import access_user_by_id
from chirp.models import UserProfile


def list_muted_users(request: HttpRequest, user_profile: UserProfile) -> HttpResponse:
    return json_success(request, data={"muted_users": get_user_mutes(user_profile)})


@typed_endpoint
def mute_user(
    request: HttpRequest, user_profile: UserProfile, *, muted_user_id: PathOnly[int]
) -> HttpResponse:
    if user_profile.id == muted_user_id:
        raise CannotMuteSelfError
    muted_user = access_user_by_id(user_profile, muted_user_id)
    do_mute_user(user_profile, muted_user)
    return json_no_content(request)


@typed_endpoint
def unmute_user(
    request: HttpRequest, user_profile: UserProfile, *, muted_user_id: PathOnly[int]
) -> HttpResponse:
    # Deactivated users can still be unmuted.
    muted_user = access_user_by_id(user_profile, muted_user_id, allow_deactivated=True)
    do_unmute_user(user_profile, muted_user)
    return json_no_content(request)
