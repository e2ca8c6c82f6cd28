from chirp.models import UnreadState, UserProfile


def get_unread_state(user_profile: UserProfile) -> dict[str, bool]:
    # Users created before UnreadState rows existed have nothing unread.
    state, _created = UnreadState.objects.get_or_create(user_profile=user_profile)
    return {
        "has_unread_mentions": state.has_unread_mentions,
        "has_unread_notifications": state.has_unread_notifications,
    }
