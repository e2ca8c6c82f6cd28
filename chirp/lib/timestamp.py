from datetime import datetime, timedelta


def datetime_to_timestamp(dt: datetime) -> int:
    """Whole seconds since the epoch, as the API reports times.  With
    USE_TZ, every datetime Chirp stores is an aware UTC one; anything
    else is a bug in the caller."""
    if dt.utcoffset() != timedelta(0):
        raise ValueError(f"Datetime {dt} is not in UTC")
    return int(dt.timestamp())
