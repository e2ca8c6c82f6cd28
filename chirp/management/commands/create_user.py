from typing import Any

from django.core.management.base import BaseCommand, CommandError, CommandParser
from typing_extensions import override

from chirp.actions.create_user import do_create_user
from chirp.lib.exceptions import JsonableError


class Command(BaseCommand):
    help = """Create a Chirp user and print their API key."""

    @override
    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument("email", help="email address of the new user")
        parser.add_argument("username", help="handle used for @mentions")
        parser.add_argument("full_name", nargs="?", default="", help="full name of the new user")

    @override
    def handle(self, *args: Any, **options: Any) -> None:
        try:
            user_profile = do_create_user(
                options["email"], options["username"], options["full_name"]
            )
        except JsonableError as e:
            raise CommandError(e.msg)
        print(f"{user_profile.id} {user_profile.email} {user_profile.api_key}")
