import secrets
import string

API_KEY_LENGTH = 32
API_KEY_CHARACTERS = frozenset(string.ascii_letters + string.digits)
_api_key_alphabet = "".join(sorted(API_KEY_CHARACTERS))


def generate_api_key() -> str:
    return "".join(secrets.choice(_api_key_alphabet) for _ in range(API_KEY_LENGTH))


def has_api_key_format(key: str) -> bool:
    # Checked before any lookup, so garbage never reaches the cache
    # or the database.
    return len(key) == API_KEY_LENGTH and API_KEY_CHARACTERS.issuperset(key)
