"""Utilities for turning free-text locations into (country, city) pairs."""

import logging
from typing import Optional

from insta_prospector.models import ParsedLocation

logger = logging.getLogger(__name__)

ONLINE_MARKER = "online"


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def parse_location(
    raw: Optional[str],
    explicit_city: Optional[str] = None,
    explicit_country: Optional[str] = None,
) -> ParsedLocation:
    """Split a location such as "Buenos Aires, Argentina" into city and country.

    - explicit country/city always win over the raw string
    - "Argentina" => country="Argentina", city=None
    - "Online, Colombia" => country="Colombia", city=None
    - "CDMX" => country="CDMX", city=None
    """
    country = _clean(explicit_country)
    if country:
        return ParsedLocation(country=country, city=_clean(explicit_city) or None)

    text = _clean(raw)
    if not text:
        return ParsedLocation()

    parts = [part.strip() for part in text.split(",") if part.strip()]
    if not parts:
        return ParsedLocation()

    is_online = ONLINE_MARKER in parts[0].lower()

    if len(parts) >= 2:
        city = None if is_online else ", ".join(parts[:-1])
        return ParsedLocation(country=parts[-1], city=city or None)

    return ParsedLocation(country=parts[0], city=None)


def compose_search_location(parsed: ParsedLocation, raw: Optional[str] = None) -> str:
    """Location string used in queries; falls back to the raw input when unparsed."""
    if parsed.city and parsed.country:
        return f"{parsed.city}, {parsed.country}"
    if parsed.country:
        return parsed.country
    return _clean(raw)
