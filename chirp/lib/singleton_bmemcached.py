import pickle
from functools import lru_cache
from typing import Any

from django_bmemcached.memcached import BMemcached


@lru_cache(None)
def _shared_client(location: str, pickled_params: bytes) -> BMemcached:
    return BMemcached(location, pickle.loads(pickled_params))  # noqa: S301


def SingletonBMemcached(location: str, params: dict[str, Any]) -> BMemcached:
    """Cache backend for CACHES["default"].

    Django creates a backend object per thread.  The bmemcached client
    is thread-safe and keeps its own connection pool, so every thread
    of the process gets the same client instead of its own connections.
    """
    # OPTIONS is a nested dict, which lru_cache cannot hash.
    return _shared_client(location, pickle.dumps(params))
