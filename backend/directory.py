# Directory view logic - search, emergency filter, sort and the detail projection
from __future__ import annotations

import math
import re
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

from models import Clinic
from resolver import name_sort_key

SORT_BY_NAME = "name"
SORT_BY_RATING = "rating"

MISSING_RATING = -1.0

# Trailing standalone state qualifier: "Middleton, WI", "madison wisconsin", "WI"
_REGION_SUFFIX = re.compile(r"(?:^|[,\s])\s*(?:wi|wisconsin)\s*$")

MAPS_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query={query}"


def _categories(clinic: Any) -> List[str]:
    categories = getattr(clinic, "categories", None) or []
    return [c for c in categories if isinstance(c, str)]


def _text(clinic: Any, attr: str) -> str:
    value = getattr(clinic, attr, None)
    return value if isinstance(value, str) else ""


def is_emergency_category(category: str) -> bool:
    label = category.casefold()
    return (
        "urgent" in label
        or "emergency" in label
        or ("24" in label and "hour" in label)
    )


def is_emergency(clinic: Any) -> bool:
    """True if any category reads as emergency, urgent or 24-hour care."""
    return any(is_emergency_category(c) for c in _categories(clinic))


def normalize_search_term(term: Optional[str]) -> str:
    """Casefold, drop a trailing ', WI' / ' Wisconsin', trim."""
    folded = (term or "").casefold().strip()
    return _REGION_SUFFIX.sub("", folded).strip()


def matches_search(clinic: Any, term: str) -> bool:
    """term must already be normalized"""
    fields = [_text(clinic, "name"), _text(clinic, "address"), _text(clinic, "city")]
    fields.extend(_categories(clinic))
    return any(term in f.casefold() for f in fields)


def _rating(clinic: Any) -> float:
    rating = getattr(clinic, "googleRating", None)
    if isinstance(rating, bool) or not isinstance(rating, (int, float)):
        return MISSING_RATING
    try:
        number = float(rating)
    except OverflowError:
        return MISSING_RATING
    return number if math.isfinite(number) else MISSING_RATING


def sort_clinics(clinics: Iterable[Any], sort_by: str = SORT_BY_NAME) -> List[Any]:
    if sort_by == SORT_BY_RATING:
        return sorted(clinics, key=lambda c: (-_rating(c), name_sort_key(_text(c, "name"))))
    return sorted(clinics, key=lambda c: name_sort_key(_text(c, "name")))


def apply_view(
    clinics: Iterable[Clinic],
    search_term: Optional[str] = "",
    emergency_only: bool = False,
    sort_by: str = SORT_BY_NAME,
) -> List[Clinic]:
    """
    Derive the ordered list the directory page shows.

    Pure: the input list and its clinics are left untouched and a new list
    is returned on every call.
    """
    result = list(clinics)

    if emergency_only:
        result = [c for c in result if is_emergency(c)]

    term = normalize_search_term(search_term)
    if term:
        result = [c for c in result if matches_search(c, term)]

    return sort_clinics(result, sort_by)


def full_address(clinic: Clinic) -> str:
    return f"{clinic.address}, {clinic.city}, WI"


def maps_url(clinic: Clinic) -> str:
    """Clinic's own Google Maps link, or a search for its address."""
    if clinic.googleMapsUrl:
        return clinic.googleMapsUrl
    return MAPS_SEARCH_URL.format(query=quote(full_address(clinic), safe=""))


def clinic_detail(clinic: Clinic) -> Dict[str, Any]:
    """Everything the detail page needs, already decided."""
    website = clinic.websiteUrl
    if not (website and website.startswith(("http://", "https://"))):
        website = None

    emergency = is_emergency(clinic)
    return {
        "clinic": clinic.to_dict(),
        "key": clinic.key,
        "fullAddress": full_address(clinic),
        "mapsUrl": maps_url(clinic),
        "websiteUrl": website,
        "showRating": bool(clinic.googleRating and clinic.googleReviewCount and clinic.googleMapsUrl),
        "isEmergency": emergency,
        # Emergency clinics get a call-now panel instead of the request form
        "acceptsAppointmentRequests": not emergency,
    }
