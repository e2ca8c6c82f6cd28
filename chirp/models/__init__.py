from chirp.models.followings import Following as Following
from chirp.models.muted_users import MutedUser as MutedUser
from chirp.models.notes import Note as Note
from chirp.models.notes import Reaction as Reaction
from chirp.models.notifications import Notification as Notification
from chirp.models.unreads import UnreadState as UnreadState
from chirp.models.users import UserProfile as UserProfile
from chirp.models.users import get_user_profile_by_id as get_user_profile_by_id
