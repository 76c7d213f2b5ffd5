"""IANA timezone validation and wall-clock / absolute-time conversion."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError, available_timezones

from dateutil import tz

from office_scheduler.config import get_settings
from office_scheduler.domain.models import TimeZoneOption

logger = logging.getLogger(__name__)

FALLBACK_TIMEZONE = "UTC"

# One representative zone per major offset
COMMON_TIMEZONE_IDS = frozenset(
    {
        "Pacific/Honolulu",
        "America/Anchorage",
        "America/Los_Angeles",
        "America/Denver",
        "America/Chicago",
        "America/New_York",
        "America/Halifax",
        "America/Sao_Paulo",
        "Atlantic/South_Georgia",
        "Atlantic/Azores",
        "Europe/London",
        "Europe/Paris",
        "Europe/Helsinki",
        "Europe/Moscow",
        "Asia/Dubai",
        "Asia/Karachi",
        "Asia/Kolkata",
        "Asia/Dhaka",
        "Asia/Bangkok",
        "Asia/Shanghai",
        "Asia/Tokyo",
        "Australia/Sydney",
        "Pacific/Auckland",
    }
)


def is_valid(zone_id: str | None) -> bool:
    """Return True if *zone_id* names a zone in the IANA database."""
    if zone_id is None or not zone_id.strip():
        return False
    try:
        ZoneInfo(zone_id)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def local_time_zone_id() -> str:
    """Return the IANA id of the host's zone.

    ``SCHEDULER_DEFAULT_TIMEZONE`` wins when set, then ``TZ``, then the
    ``/etc/localtime`` link target. Falls back to UTC.
    """
    configured = get_settings().default_timezone
    if is_valid(configured):
        return configured

    env_zone = os.environ.get("TZ", "").lstrip(":")
    if is_valid(env_zone):
        return env_zone

    target = os.path.realpath("/etc/localtime")
    if "zoneinfo/" in target:
        candidate = target.split("zoneinfo/", 1)[1]
        if is_valid(candidate):
            return candidate

    return FALLBACK_TIMEZONE


def resolve(zone_id: str | None) -> str:
    """Return *zone_id* if it is valid, otherwise the host's zone id."""
    if is_valid(zone_id):
        return zone_id
    fallback = local_time_zone_id()
    if zone_id:
        logger.warning("Unknown timezone %r, falling back to %s", zone_id, fallback)
    return fallback


def get_zone(zone_id: str | None) -> ZoneInfo:
    return ZoneInfo(resolve(zone_id))


def wall_clock_to_absolute(local: datetime, zone_id: str | None) -> datetime:
    """Convert a naive wall-clock time in *zone_id* to an aware UTC instant.

    Conversion is lenient: a time skipped by a spring-forward transition is
    shifted forward by the length of the gap, and a time repeated by a
    fall-back transition resolves to the later of the two instants.
    """
    zone = get_zone(zone_id)
    zoned = local.replace(tzinfo=zone)
    if not tz.datetime_exists(zoned):
        zoned = tz.resolve_imaginary(zoned)
    elif tz.datetime_ambiguous(zoned):
        zoned = tz.enfold(zoned, fold=1)
    return zoned.astimezone(timezone.utc)


def absolute_to_wall_clock(instant: datetime, zone_id: str | None) -> datetime:
    """Project an aware instant into *zone_id* and drop the offset."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(get_zone(zone_id)).replace(tzinfo=None, fold=0)


def now_in_zone(zone_id: str | None, now: datetime) -> datetime:
    """Return the wall-clock time in *zone_id* at the absolute instant *now*."""
    return absolute_to_wall_clock(now, zone_id)


def common_time_zones(now: datetime | None = None) -> list[TimeZoneOption]:
    return _time_zone_options(common_only=True, now=now)


def all_time_zones(now: datetime | None = None) -> list[TimeZoneOption]:
    return _time_zone_options(common_only=False, now=now)


def _time_zone_options(common_only: bool, now: datetime | None) -> list[TimeZoneOption]:
    now = now or datetime.now(timezone.utc)
    rows = []
    for zone_id in available_timezones():
        # Skip legacy aliases such as "EST" or "GMT+5"
        if "/" not in zone_id or zone_id.startswith("Etc/"):
            continue
        if common_only and zone_id not in COMMON_TIMEZONE_IDS:
            continue
        offset = now.astimezone(ZoneInfo(zone_id)).utcoffset()
        rows.append((offset, zone_id))

    rows.sort()
    return [
        TimeZoneOption(
            id=zone_id,
            display_name=f"(UTC{_format_offset(offset)}) {zone_id.replace('_', ' ')}",
        )
        for offset, zone_id in rows
    ]


def _format_offset(offset) -> str:
    minutes = int(offset.total_seconds() // 60)
    sign = "+" if minutes >= 0 else "-"
    hours, minutes = divmod(abs(minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"
