import re

from chirp.models import UserProfile

# `@username`, where username is the lowercased \w{1,20} handle stored
# on UserProfile.  The lookbehind keeps email addresses and repeated
# `@@` from being read as mentions.
MENTIONS_RE = re.compile(r"(?<![\w@.])@(?P<username>\w{1,20})(?!\w)")


def possible_mentions(content: str) -> set[str]:
    return {m.group("username").lower() for m in MENTIONS_RE.finditer(content)}


def get_mentioned_users(content: str) -> list[UserProfile]:
    usernames = possible_mentions(content)
    if not usernames:
        return []
    return list(
        UserProfile.objects.filter(username__in=usernames, is_active=True).order_by("id")
    )
