"""
Discovery import: turn OSM elements around a city into pending businesses.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from django.db import IntegrityError, transaction
from django.utils.text import slugify

from directory.enrichment import overpass
from directory.enrichment.errors import ImportFailed
from directory.models import Business, Category, City, Region

logger = logging.getLogger(__name__)

MAX_SLUG_LENGTH = 100


@dataclass
class ImportResult:
    created: int = 0
    skipped: int = 0
    failed: int = 0
    categories_failed: int = 0


def business_slug(name: str, osm_id: str) -> str:
    slug = slugify(name)[:MAX_SLUG_LENGTH].strip('-')
    return slug or slugify(f"osm-{osm_id}")


def _create_business(element: dict, city: City, region: Region, category: Category) -> bool:
    """Create one pending business. Returns False when it already exists."""
    osm_id = element["osm_id"]
    if Business.objects.filter(
        city=city, source=Business.Source.OPENSTREETMAP, source_id=osm_id,
    ).exists():
        return False

    slug = business_slug(element["name"], osm_id)
    try:
        with transaction.atomic():
            Business.objects.create(
                region=region,
                city=city,
                category=category,
                name=element["name"][:255],
                slug=slug,
                address=element.get("address"),
                phone=element.get("phone"),
                email=element.get("email"),
                website=element.get("website"),
                google_maps_url=element.get("google_maps_url"),
                latitude=element.get("latitude"),
                longitude=element.get("longitude"),
                opening_hours=element.get("opening_hours"),
                status=Business.Status.PENDING,
                source=Business.Source.OPENSTREETMAP,
                source_id=osm_id,
                raw_data={
                    "osm_id": osm_id,
                    "opening_hours_raw": element.get("opening_hours_raw"),
                    "raw_tags": element.get("raw_tags") or {},
                    "extracted_hints": element.get("extracted_hints") or {},
                },
            )
    except IntegrityError:
        # Slug already taken in this city, or a concurrent import won
        logger.debug("Business already exists: %s, skipping", element["name"])
        return False
    return True


def import_businesses(
    city: City,
    region: Region,
    categories: Optional[Iterable[Category]] = None,
    radius_km: float = 5,
) -> ImportResult:
    """Import OSM businesses for every mapped category around ``city``.

    Existing businesses are never overwritten. A failing category is
    counted and the rest continue; ImportFailed is raised only when every
    category failed (or the city has no coordinates), so the job retries.
    """
    if city.latitude is None or city.longitude is None:
        raise ImportFailed('no_coordinates', f"City {city.name} has no coordinates")

    if categories is None:
        categories = Category.objects.filter(slug__in=list(overpass.OSM_TAGS))
    categories = [c for c in categories if overpass.has_tags(c.slug)]

    bbox = overpass.bounding_box(city.latitude, city.longitude, radius_km)
    result = ImportResult()
    last_error: Optional[ImportFailed] = None

    for category in categories:
        try:
            elements = overpass.search(category.slug, bbox)
        except ImportFailed as exc:
            logger.warning("Overpass search for %s in %s failed: %s", category.slug, city.name, exc)
            result.categories_failed += 1
            last_error = exc
            continue

        for element in elements:
            try:
                if _create_business(element, city, region, category):
                    result.created += 1
                else:
                    result.skipped += 1
            except Exception:
                logger.exception("Failed to import OSM element %s (%s)", element.get("osm_id"), element.get("name"))
                result.failed += 1

    if categories and result.categories_failed == len(categories):
        raise ImportFailed(
            last_error.reason if last_error else 'all_categories_failed',
            f"All {len(categories)} category queries failed for {city.name}",
            **(last_error.details if last_error else {}),
        )

    logger.info(
        "Overpass import for %s: %d created, %d skipped, %d failed, %d categories failed",
        city.name, result.created, result.skipped, result.failed, result.categories_failed,
    )
    return result
