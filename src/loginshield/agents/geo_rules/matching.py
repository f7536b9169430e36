"""Location and time-window matching for access rules."""

import ipaddress
import math
from datetime import datetime, time, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from loginshield.common.constants import GeoConstants
from loginshield.data.schemas.access_rule import RuleConditions, TimeRange, TimeWindow
from loginshield.data.schemas.common import Location


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometers."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return GeoConstants.EARTH_RADIUS_KM * c


def ip_in_ranges(ip: Optional[str], cidrs: Iterable[str]) -> bool:
    """True CIDR containment. Unparseable addresses never match."""
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return False
    if address.version == 6 and address.ipv4_mapped is not None:
        address = address.ipv4_mapped

    for cidr in cidrs:
        network = ipaddress.ip_network(cidr, strict=False)
        if address.version == network.version and address in network:
            return True
    return False


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return a is not None and b is not None and a.strip().lower() == b.strip().lower()


def matches_location(conditions: RuleConditions, location: Location) -> bool:
    """True when any populated condition category matches.

    A rule without location conditions matches nothing.
    """
    country = (location.country or "").upper()

    if conditions.countries and country in conditions.countries:
        return True

    if any(
        _same(r.country, location.country) and _same(r.region, location.region)
        for r in conditions.regions
    ):
        return True

    if any(
        _same(c.country, location.country)
        and (c.region is None or _same(c.region, location.region))
        and _same(c.city, location.city)
        for c in conditions.cities
    ):
        return True

    if conditions.geofences and location.has_coordinates:
        for fence in conditions.geofences:
            distance = haversine_km(location.latitude, location.longitude, fence.latitude, fence.longitude)
            if distance <= fence.radius_km:
                return True

    if location.ip and location.ip in conditions.ip_addresses:
        return True

    if conditions.ip_ranges and ip_in_ranges(location.ip, conditions.ip_ranges):
        return True

    if location.timezone and location.timezone in conditions.timezones:
        return True

    return False


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def in_time_range(time_range: TimeRange, now: datetime, default_tz: str) -> bool:
    """Inclusive on both ends; wraps past midnight when end < start."""
    local = now.astimezone(ZoneInfo(time_range.timezone or default_tz))
    current = local.time().replace(second=0, microsecond=0, tzinfo=None)
    start = _parse_hhmm(time_range.start)
    end = _parse_hhmm(time_range.end)
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


def day_of_week(moment: datetime) -> int:
    """0=Sunday .. 6=Saturday."""
    return (moment.weekday() + 1) % 7


def matches_time_window(window: TimeWindow, now: Optional[datetime] = None) -> bool:
    """Configured categories are AND'd; entries inside a category are OR'd."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(ZoneInfo(window.timezone))

    if window.days_of_week and day_of_week(local) not in window.days_of_week:
        return False

    if window.time_ranges and not any(
        in_time_range(r, now, window.timezone) for r in window.time_ranges
    ):
        return False

    if window.date_ranges:
        today = local.date()
        if not any(r.start <= today <= r.end for r in window.date_ranges):
            return False

    return True
