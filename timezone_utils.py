import os
from datetime import datetime
import pytz


def get_app_timezone():
    """Timezone used for naive timestamps written to the database"""
    return pytz.timezone(os.environ.get('APP_TIMEZONE', 'Asia/Kolkata'))


def get_local_time_naive():
    """Get current local time as naive datetime for database storage"""
    return datetime.now(get_app_timezone()).replace(tzinfo=None)


def to_local_naive(dt):
    """Convert an aware datetime to naive local time; naive values are assumed local already"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(get_app_timezone()).replace(tzinfo=None)


def to_iso(dt):
    """Render a stored naive datetime as ISO-8601 with the local offset"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = get_app_timezone().localize(dt)
    return dt.isoformat()
