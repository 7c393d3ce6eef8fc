# Canonical clinic records and the resolution result types
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

DEFAULT_ADDRESS = "Address not available"
DEFAULT_CITY = "Dane County"
DEFAULT_PHONE = "Phone not available"
DEFAULT_CATEGORY = "General Practice"


class Source(str, Enum):
    """Provenance of a resolved clinic list"""
    PRIMARY = "primary"
    FALLBACK = "fallback"
    CACHE = "cache"


class SourceStatus(str, Enum):
    """Outcome of one source attempt during a resolution cycle"""
    OK = "ok"
    EMPTY = "empty"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Clinic:
    """One veterinary business, normalized"""
    name: str
    address: str = DEFAULT_ADDRESS
    city: str = DEFAULT_CITY
    phone: str = DEFAULT_PHONE
    categories: List[str] = field(default_factory=lambda: [DEFAULT_CATEGORY])
    photoUrl: Optional[str] = None
    hours: Optional[str] = None
    websiteUrl: Optional[str] = None
    googleRating: Optional[float] = None
    googleReviewCount: Optional[int] = None
    googleMapsUrl: Optional[str] = None

    @property
    def key(self) -> str:
        return dedup_key(self.name, self.address)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize, dropping absent optional fields"""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class ResolvedClinicSet:
    """Result of one resolution cycle. Never mutated after creation."""
    clinics: List[Clinic]
    source: Source
    primary_status: SourceStatus = SourceStatus.OK
    fallback_status: SourceStatus = SourceStatus.SKIPPED

    @property
    def is_empty(self) -> bool:
        return not self.clinics

    @property
    def all_sources_failed(self) -> bool:
        """True when neither source could be read at all"""
        return (
            self.primary_status == SourceStatus.ERROR
            and self.fallback_status == SourceStatus.ERROR
        )


@dataclass(frozen=True)
class CacheEntry:
    """Persisted snapshot of a successful live resolution"""
    payload: List[Clinic]
    fetchedAtEpochMs: int

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.fetchedAtEpochMs


def dedup_key(name: Optional[str], address: Optional[str]) -> str:
    """Dedup key: lower(trim(name)) + "|" + lower(trim(address))"""
    return f"{(name or '').strip().lower()}|{(address or '').strip().lower()}"
