import hashlib
import logging
import os
from collections.abc import Callable, Iterable, Sequence
from functools import wraps
from typing import TYPE_CHECKING, Any, TypeVar

from bmemcached.exceptions import MemcachedException
from django.core.cache import cache
from django.db.models import QuerySet
from typing_extensions import ParamSpec

if TYPE_CHECKING:
    # The models import this module to register their flush handlers.
    from chirp.models import MutedUser, UserProfile

ParamT = ParamSpec("ParamT")
ReturnT = TypeVar("ReturnT")
KeyT = TypeVar("KeyT")
RowT = TypeVar("RowT")
ValueT = TypeVar("ValueT")

logger = logging.getLogger("chirp.cache")

# Every key Chirp stores goes through this prefix, so that a test (or
# a deployment sharing a memcached) never sees another one's entries.
KEY_PREFIX = "chirp:"


def bounce_key_prefix_for_testing(test_name: str) -> None:
    global KEY_PREFIX
    # Hashed to stay well under memcached's 250-byte key limit.
    KEY_PREFIX = hashlib.sha1(f"{test_name}:{os.getpid()}".encode()).hexdigest() + ":"


def cache_get(key: str) -> Any:
    """A singleton tuple holding the cached value, or None on a miss."""
    return cache.get(KEY_PREFIX + key)


def cache_set(key: str, val: Any, timeout: int | None = None) -> None:
    try:
        cache.set(KEY_PREFIX + key, (val,), timeout=timeout)
    except MemcachedException:
        # A failed write only costs a later cache miss.
        logger.exception("Could not store %s in the cache", key)


def cache_get_many(keys: Iterable[str]) -> dict[str, Any]:
    found = cache.get_many([KEY_PREFIX + key for key in keys])
    return {key.removeprefix(KEY_PREFIX): val for key, val in found.items()}


def cache_set_many(items: dict[str, Any], timeout: int | None = None) -> None:
    try:
        cache.set_many({KEY_PREFIX + key: (val,) for key, val in items.items()}, timeout=timeout)
    except MemcachedException:
        logger.exception("Could not store %d keys in the cache", len(items))


def cache_delete(key: str) -> None:
    cache_delete_many([key])


def cache_delete_many(keys: Iterable[str]) -> None:
    cache.delete_many([KEY_PREFIX + key for key in keys])


def cache_with_key(
    keyfunc: Callable[ParamT, str], timeout: int | None = None
) -> Callable[[Callable[ParamT, ReturnT]], Callable[ParamT, ReturnT]]:
    """Caches the return value of the decorated function under the
    key that `keyfunc` computes from the same arguments.  The caller
    owns the key namespace and the invalidation of the entries."""

    def decorator(func: Callable[ParamT, ReturnT]) -> Callable[ParamT, ReturnT]:
        @wraps(func)
        def func_with_caching(*args: ParamT.args, **kwargs: ParamT.kwargs) -> ReturnT:
            key = keyfunc(*args, **kwargs)
            hit = cache_get(key)
            if hit is not None:
                return hit[0]

            val = func(*args, **kwargs)
            # A QuerySet would be pickled unevaluated.
            assert not isinstance(val, QuerySet), f"{func.__name__} returned a QuerySet"
            cache_set(key, val, timeout=timeout)
            return val

        return func_with_caching

    return decorator


def bulk_cached_fetch(
    cache_key_function: Callable[[KeyT], str],
    query_function: Callable[[list[KeyT]], Iterable[RowT]],
    object_ids: Sequence[KeyT],
    *,
    id_fetcher: Callable[[RowT], KeyT],
    cache_transformer: Callable[[RowT], ValueT],
    timeout: int | None = None,
) -> dict[KeyT, ValueT]:
    """Looks up many cache_with_key-style entries at once.  The ids
    that miss are loaded with a single call to `query_function`, and
    what it returns is written back to the cache.  Ids that neither
    the cache nor the query know about are left out of the result."""
    if not object_ids:
        return {}

    keys = {object_id: cache_key_function(object_id) for object_id in object_ids}
    cached = cache_get_many(keys.values())
    result = {
        object_id: cached[key][0] for object_id, key in keys.items() if key in cached
    }

    missing = [object_id for object_id in keys if object_id not in result]
    if missing:
        fetched = {}
        for row in query_function(missing):
            object_id = id_fetcher(row)
            result[object_id] = fetched[keys[object_id]] = cache_transformer(row)
        if fetched:
            cache_set_many(fetched, timeout=timeout)
    return result


def user_profile_by_api_key_cache_key(api_key: str) -> str:
    return f"user_profile_by_api_key:{api_key}"


def user_profile_by_id_cache_key(user_profile_id: int) -> str:
    return f"user_profile_by_id:{user_profile_id}"


def get_muted_user_ids_cache_key(user_profile_id: int) -> str:
    return f"muted_user_ids:{user_profile_id}"


def active_user_ids_cache_key() -> str:
    return "active_user_ids"


def changed(update_fields: Sequence[str] | None, fields: list[str]) -> bool:
    # Creating or deleting a row passes update_fields=None.
    return update_fields is None or not set(fields).isdisjoint(update_fields)


def flush_user_profile(
    *,
    instance: "UserProfile",
    update_fields: Sequence[str] | None = None,
    **kwargs: object,
) -> None:
    keys = [user_profile_by_id_cache_key(instance.id)]
    if instance.api_key:
        keys.append(user_profile_by_api_key_cache_key(instance.api_key))
    if changed(update_fields, ["is_active"]):
        keys.append(active_user_ids_cache_key())
    cache_delete_many(keys)


def flush_muted_users_cache(*, instance: "MutedUser", **kwargs: object) -> None:
    cache_delete(get_muted_user_ids_cache_key(instance.user_profile_id))
