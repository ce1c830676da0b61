from datetime import date, datetime
from typing import Optional

import pytz

import config


def utcnow() -> datetime:
    """Datetime actual en UTC (timezone-aware)"""
    return datetime.now(pytz.utc)


def property_tz(tz_name: Optional[str] = None):
    """Timezone de la propiedad; si no tiene, usa la de config"""
    try:
        return pytz.timezone(tz_name or config.DEFAULT_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone(config.DEFAULT_TIMEZONE)


def get_property_now(tz_name: Optional[str] = None) -> datetime:
    """Returns current time in the property's timezone"""
    return datetime.now(property_tz(tz_name))


def to_property_time(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """Converts a datetime to the property's timezone"""
    if dt.tzinfo is None:
        # Naive = UTC (así lo guarda SQLite)
        return pytz.utc.localize(dt).astimezone(property_tz(tz_name))
    return dt.astimezone(property_tz(tz_name))


def get_operational_date(tz_name: Optional[str] = None) -> date:
    """Fecha operativa de hoy en la timezone de la propiedad"""
    return get_property_now(tz_name).date()
