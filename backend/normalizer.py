# Schema normalization - map raw rows from any historical column naming onto Clinic
from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

from models import (
    Clinic,
    DEFAULT_ADDRESS,
    DEFAULT_CATEGORY,
    DEFAULT_CITY,
    DEFAULT_PHONE,
)

logger = logging.getLogger(__name__)

# Ordered candidate source keys per canonical field. The canonical camelCase
# key is always listed so already-normalized records pass through unchanged.
NAME_KEYS = ("name", "clinic_name", "Clinic Name", "Name")
ADDRESS_KEYS = ("full_address", "address", "Address", "Full Address", "addr")
CITY_KEYS = ("city", "City", "town")
PHONE_KEYS = ("phone", "phone_number", "Phone", "Phone Number", "tel")
PHOTO_KEYS = ("photoUrl", "photo_url", "photo", "Photo", "Photo URL", "image")
HOURS_KEYS = ("hours", "working_hours", "Hours", "opening_hours")
WEBSITE_KEYS = ("websiteUrl", "website_url", "website", "Website", "site")
RATING_KEYS = ("googleRating", "google_rating", "rating", "Rating", "Google Rating")
REVIEW_COUNT_KEYS = (
    "googleReviewCount",
    "google_review_count",
    "reviews",
    "reviews_count",
    "Reviews",
    "Review Count",
)
MAPS_URL_KEYS = (
    "googleMapsUrl",
    "google_maps_url",
    "location_link",
    "maps_url",
    "Google Maps URL",
)
CATEGORIES_KEYS = ("categories", "category", "Categories", "Category", "subtypes")
EMERGENCY_STATUS_KEYS = ("emergency_status", "emergencyStatus", "Emergency Status")


def first_defined(record: Mapping[str, Any], keys: Sequence[str]) -> Any:
    """Return the value of the first candidate key that is present and not None."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _text_or_default(value: Any, default: str) -> str:
    text = _as_text(value)
    return default if text is None else text


def _optional_text(value: Any) -> Optional[str]:
    text = _as_text(value)
    return text or None


def _as_float(value: Any) -> Optional[float]:
    """Finite float or None; nan, inf and overflowing values count as absent."""
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _as_int(value: Any) -> Optional[int]:
    number = _as_float(value)
    if number is None:
        return None
    return int(number)


def parse_categories(raw: Any) -> List[str]:
    """
    Convert a raw categories value into a list of trimmed strings.

    Accepts a real list (non-string elements dropped), a brace-delimited
    pseudo-array such as '{Emergency,"Urgent Care"}', or a plain
    comma-separated string. Anything else yields [].
    """
    if isinstance(raw, (list, tuple)):
        return [item.strip() for item in raw if isinstance(item, str) and item.strip()]
    if not isinstance(raw, str):
        return []

    text = raw.strip()
    if text.startswith("{") and text.endswith("}"):
        parts = (p.strip().strip("\"'").strip() for p in text[1:-1].split(","))
        return [p for p in parts if p]
    return [p.strip() for p in text.split(",") if p.strip()]


def merge_categories(raw_categories: Any, emergency_status: Any = None) -> List[str]:
    """Emergency status first, then source categories, no exact duplicates."""
    merged: Dict[str, None] = {}  # dict keeps insertion order

    status = _as_text(emergency_status)
    if status:
        merged[status] = None
    for category in parse_categories(raw_categories):
        merged.setdefault(category, None)

    if not merged:
        return [DEFAULT_CATEGORY]
    return list(merged)


def normalize_record(raw: Mapping[str, Any]) -> Optional[Clinic]:
    """
    Map a raw record onto a Clinic.

    Returns None when the record has no usable name; such records are
    never shown or cached.
    """
    if not isinstance(raw, Mapping):
        return None

    name = _as_text(first_defined(raw, NAME_KEYS))
    if not name:
        return None

    return Clinic(
        name=name,
        address=_text_or_default(first_defined(raw, ADDRESS_KEYS), DEFAULT_ADDRESS),
        city=_text_or_default(first_defined(raw, CITY_KEYS), DEFAULT_CITY),
        phone=_text_or_default(first_defined(raw, PHONE_KEYS), DEFAULT_PHONE),
        categories=merge_categories(
            first_defined(raw, CATEGORIES_KEYS),
            first_defined(raw, EMERGENCY_STATUS_KEYS),
        ),
        photoUrl=_optional_text(first_defined(raw, PHOTO_KEYS)),
        hours=_optional_text(first_defined(raw, HOURS_KEYS)),
        websiteUrl=_optional_text(first_defined(raw, WEBSITE_KEYS)),
        googleRating=_as_float(first_defined(raw, RATING_KEYS)),
        googleReviewCount=_as_int(first_defined(raw, REVIEW_COUNT_KEYS)),
        googleMapsUrl=_optional_text(first_defined(raw, MAPS_URL_KEYS)),
    )


def normalize_records(rows: Sequence[Any], source_id: str = "rows") -> List[Clinic]:
    """Normalize a batch, dropping rows without a name or that cannot be read."""
    clinics = []
    dropped = 0
    for row in rows:
        try:
            clinic = normalize_record(row)
        except (ValueError, TypeError, OverflowError) as e:
            logger.warning("%s: skipping unreadable record: %s", source_id, e)
            clinic = None
        if clinic is None:
            dropped += 1
            continue
        clinics.append(clinic)
    if dropped:
        logger.info("%s: dropped %d record(s) without a usable name", source_id, dropped)
    return clinics
