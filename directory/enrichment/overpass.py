"""
OpenStreetMap Overpass API client for discovering businesses.

Free source of candidate businesses: queries OSM nodes and ways carrying a
category's tags inside a bounding box and normalizes each named element.

    bbox = bounding_box(42.43, -8.64, radius_km=5)
    elements = search("restaurants", bbox)
"""

import logging
import math
import re
from typing import Dict, List, Optional, Tuple

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)

from directory.enrichment.errors import ImportFailed

logger = logging.getLogger(__name__)

OVERPASS_URL = "https://overpass-api.de/api/interpreter"
REQUEST_TIMEOUT = 60
USER_AGENT = "LocalDirectoryBot/1.0 (business directory)"

BBox = Tuple[float, float, float, float]  # south, west, north, east

# Category slug -> OSM (key, value) filters. Several filters cover the
# different tagging conventions in use for the same kind of place.
OSM_TAGS: Dict[str, List[Tuple[str, str]]] = {
    "restaurants": [("amenity", "restaurant")],
    "cafes": [("amenity", "cafe")],
    "bakeries": [("shop", "bakery")],
    "butchers": [("shop", "butcher")],
    "supermarkets": [("shop", "supermarket")],
    "markets": [("amenity", "marketplace"), ("shop", "marketplace")],
    "wineries": [("craft", "winery"), ("shop", "wine")],
    "cider-houses": [("amenity", "bar"), ("amenity", "pub")],
    "doctors": [("amenity", "doctors"), ("healthcare", "doctor")],
    "dentists": [("amenity", "dentist"), ("healthcare", "dentist")],
    "hospitals": [("amenity", "hospital")],
    "veterinarians": [("amenity", "veterinary")],
    "hair-salons": [("shop", "hairdresser"), ("shop", "beauty")],
    "libraries": [("amenity", "library")],
    "elementary-schools": [("amenity", "school")],
    "high-schools": [("amenity", "school")],
    "music-schools": [("amenity", "music_school"), ("leisure", "music_school")],
    "language-schools": [("office", "language_school"), ("amenity", "language_school")],
    "lawyers": [("office", "lawyer"), ("office", "notary")],
    "accountants": [("office", "accountant"), ("office", "tax_advisor")],
    "electricians": [("craft", "electrician")],
    "plumbers": [("craft", "plumber")],
    "car-services": [("shop", "car_repair"), ("shop", "car")],
    "real-estate": [("office", "estate_agent")],
    "municipalities": [("amenity", "townhall"), ("office", "government")],
}

DAY_ORDER = ["Mo", "Tu", "We", "Th", "Fr", "Sa", "Su"]
DAY_NAMES = {
    "Mo": "monday",
    "Tu": "tuesday",
    "We": "wednesday",
    "Th": "thursday",
    "Fr": "friday",
    "Sa": "saturday",
    "Su": "sunday",
}

# OSM tags copied verbatim into extracted_hints
_HINT_TAGS = (
    "cuisine", "description", "operator", "brand", "wheelchair",
    "takeaway", "delivery", "outdoor_seating", "internet_access",
)
_SOCIAL_TAGS = {
    "facebook": ("contact:facebook", "facebook"),
    "instagram": ("contact:instagram", "instagram"),
    "twitter": ("contact:twitter", "twitter"),
    "tripadvisor": ("contact:tripadvisor",),
}
_SEGMENT_RE = re.compile(r"^([A-Za-z,\-]+)\s+(.+)$")


def tags_for_category(category_slug: str) -> Optional[List[Tuple[str, str]]]:
    return OSM_TAGS.get(category_slug)


def has_tags(category_slug: str) -> bool:
    return category_slug in OSM_TAGS


def bounding_box(lat: float, lon: float, radius_km: float = 5) -> BBox:
    """Square box around a point; one degree of latitude is ~111km."""
    lat_offset = radius_km / 111
    lon_offset = radius_km / (111 * math.cos(math.radians(lat)))
    return (lat - lat_offset, lon - lon_offset, lat + lat_offset, lon + lon_offset)


def build_query(tags: List[Tuple[str, str]], bbox: BBox) -> str:
    south, west, north, east = bbox
    area = f"{south},{west},{north},{east}"
    filters = []
    for key, value in tags:
        filters.append(f'node["{key}"="{value}"]({area});')
        filters.append(f'way["{key}"="{value}"]({area});')
    body = "\n  ".join(filters)
    return f"[out:json][timeout:{REQUEST_TIMEOUT}];\n(\n  {body}\n);\nout center tags;\n"


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, ImportFailed) and exc.reason == 'server_error'


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=30),
    retry=retry_if_exception(_is_retryable),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
def _request(query: str) -> list:
    resp = httpx.post(
        OVERPASS_URL,
        data={"data": query},
        headers={"User-Agent": USER_AGENT},
        timeout=REQUEST_TIMEOUT,
    )
    if resp.status_code == 429:
        # Retried by the job queue backoff, not here
        logger.warning("Overpass rate limited, retry later")
        raise ImportFailed('rate_limited', 'Overpass rate limited', status=429)
    if resp.status_code >= 500:
        raise ImportFailed('server_error', f"Overpass error {resp.status_code}", status=resp.status_code)
    if resp.status_code != 200:
        logger.error("Overpass error %s: %s", resp.status_code, resp.text[:200])
        raise ImportFailed('http_error', f"Overpass error {resp.status_code}", status=resp.status_code)
    try:
        data = resp.json()
    except ValueError as exc:
        # Overpass sometimes answers 200 with an HTML error page
        logger.error("Overpass returned non-JSON response: %s", resp.text[:200])
        raise ImportFailed('invalid_response', 'Overpass returned non-JSON response') from exc
    if not isinstance(data, dict) or "elements" not in data:
        raise ImportFailed('invalid_response', 'Overpass response has no elements')
    return data["elements"]


def search(category_slug: str, bbox: BBox) -> List[dict]:
    """Named OSM elements for a category inside ``bbox``, normalized.

    Raises ImportFailed (``no_osm_tags``, ``rate_limited``, ``http_error``,
    ``invalid_response``, ``timeout``, ``network_error``).
    """
    tags = tags_for_category(category_slug)
    if tags is None:
        raise ImportFailed('no_osm_tags', f"No OSM tags for category {category_slug!r}")

    query = build_query(tags, bbox)
    logger.info("Overpass query for %s: %d chars", category_slug, len(query))
    try:
        elements = _request(query)
    except httpx.TimeoutException as exc:
        raise ImportFailed('timeout', f"Overpass timed out: {exc}") from exc
    except httpx.TransportError as exc:
        raise ImportFailed('network_error', f"Overpass request failed: {exc}") from exc

    normalized = [normalize_element(el) for el in elements if (el.get("tags") or {}).get("name")]
    logger.info("Overpass found %d %s in bbox", len(normalized), category_slug)
    return normalized


def _coordinates(element: dict) -> Tuple[Optional[float], Optional[float]]:
    if element.get("type") == "node" and "lat" in element:
        return element.get("lat"), element.get("lon")
    center = element.get("center") or {}
    return center.get("lat"), center.get("lon")


def build_address(tags: dict) -> Optional[str]:
    street = tags.get("addr:street")
    number = tags.get("addr:housenumber")
    street_line = None
    if street:
        street_line = f"{street} {number}" if number else street
    parts = [p for p in (street_line, tags.get("addr:postcode"), tags.get("addr:city")) if p]
    return ", ".join(parts) or None


def google_maps_url(lat, lon) -> Optional[str]:
    if lat is None or lon is None:
        return None
    return f"https://www.google.com/maps/search/?api=1&query={lat},{lon}"


def normalize_element(element: dict) -> dict:
    tags = element.get("tags") or {}
    lat, lon = _coordinates(element)
    return {
        "osm_id": f"{element.get('type')}/{element.get('id')}",
        "name": tags.get("name"),
        "address": build_address(tags),
        "phone": tags.get("phone") or tags.get("contact:phone"),
        "website": tags.get("website") or tags.get("contact:website") or tags.get("url"),
        "email": tags.get("email") or tags.get("contact:email"),
        "latitude": lat,
        "longitude": lon,
        "opening_hours": parse_opening_hours(tags.get("opening_hours")),
        "opening_hours_raw": tags.get("opening_hours"),
        "google_maps_url": google_maps_url(lat, lon),
        "raw_tags": tags,
        "extracted_hints": extract_hints(tags),
    }


def extract_hints(tags: dict) -> dict:
    """Tags useful to the enrichment prompt, in a compact form."""
    hints = {}
    for key in _HINT_TAGS:
        value = tags.get(key)
        if value:
            hints[key] = value.replace(";", ", ") if key == "cuisine" else value

    cash = tags.get("payment:cash")
    cards = [tags.get(k) for k in ("payment:cards", "payment:credit_cards", "payment:debit_cards")]
    if cash == "only" or (cash == "yes" and any(c == "no" for c in cards) and not any(c == "yes" for c in cards)):
        hints["cash_only"] = True

    diets = [
        key.split(":", 1)[1]
        for key, value in sorted(tags.items())
        if key.startswith("diet:") and value in ("yes", "only")
    ]
    if diets:
        hints["diet_options"] = diets

    social = {}
    for platform, keys in _SOCIAL_TAGS.items():
        for key in keys:
            if tags.get(key):
                social[platform] = tags[key]
                break
    if social:
        hints["social_media"] = social
    return hints


def _expand_day_range(token: str) -> List[str]:
    parts = token.strip().split("-")
    if len(parts) == 2:
        start, end = parts
        if start in DAY_ORDER and end in DAY_ORDER:
            i, j = DAY_ORDER.index(start), DAY_ORDER.index(end)
            if j >= i:
                return [DAY_NAMES[d] for d in DAY_ORDER[i:j + 1]]
        return []
    if len(parts) == 1 and parts[0] in DAY_NAMES:
        return [DAY_NAMES[parts[0]]]
    return []


def parse_opening_hours(raw: Optional[str]) -> Optional[Dict[str, str]]:
    """Parse OSM ``opening_hours`` into ``{"monday": "09:00-17:00", ...}``.

    Handles ``24/7``, day ranges (``Mo-Fr``) and lists (``Mo,We``).
    Unparseable segments (holidays, week numbers) are skipped; None when
    nothing could be read.
    """
    if not raw:
        return None
    raw = raw.strip()
    if raw == "24/7":
        return {name: "00:00-24:00" for name in DAY_NAMES.values()}

    result: Dict[str, str] = {}
    for segment in raw.split(";"):
        match = _SEGMENT_RE.match(segment.strip())
        if not match:
            continue
        days_str, hours = match.groups()
        days = [day for token in days_str.split(",") for day in _expand_day_range(token)]
        for day in days:
            result[day] = hours.strip()
    return result or None
