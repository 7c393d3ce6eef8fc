# Source resolution - primary table, then static snapshot, with provenance
from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Tuple

import httpx

from curation import CurationOverride, apply_overrides
from models import Clinic, ResolvedClinicSet, Source, SourceStatus
from normalizer import normalize_records
from sources import RowSource, SourceError

logger = logging.getLogger(__name__)


def name_sort_key(name: Optional[str]) -> Tuple[str, str]:
    """Case-insensitive ordering with a case-sensitive tie-break, like localeCompare."""
    text = name or ""
    return (text.casefold(), text)


def sort_by_name(clinics: Iterable[Clinic]) -> List[Clinic]:
    return sorted(clinics, key=lambda c: name_sort_key(c.name))


def dedupe(clinics: Iterable[Clinic]) -> List[Clinic]:
    """Keep the first clinic seen for each dedup key."""
    seen = set()
    unique = []
    for clinic in clinics:
        if clinic.key in seen:
            logger.debug("Dropping duplicate clinic %s", clinic.key)
            continue
        seen.add(clinic.key)
        unique.append(clinic)
    return unique


def finalize(clinics: Iterable[Clinic], overrides: Optional[List[CurationOverride]] = None) -> List[Clinic]:
    """Dedupe, apply curation, dedupe again (a patch can collide), sort."""
    curated = apply_overrides(dedupe(clinics), overrides or [])
    return sort_by_name(dedupe(curated))


async def _attempt(source: RowSource) -> Tuple[List[Clinic], SourceStatus]:
    """Read one source. Errors are logged and reported as a status, never raised."""
    try:
        rows: List[Any] = await source.fetch_rows()
    except (SourceError, httpx.HTTPError) as e:
        logger.warning("Source %s unavailable: %s", source.source_id, e)
        return [], SourceStatus.ERROR

    if not rows:
        logger.warning("Source %s returned no rows", source.source_id)
        return [], SourceStatus.EMPTY

    clinics = normalize_records(rows, source.source_id)
    if not clinics:
        logger.warning("Source %s returned %d row(s), none with a usable name", source.source_id, len(rows))
        return [], SourceStatus.EMPTY
    return clinics, SourceStatus.OK


class SourceResolver:
    """Resolves the clinic list from a priority-ordered pair of sources."""

    def __init__(
        self,
        primary: RowSource,
        fallback: RowSource,
        overrides: Optional[List[CurationOverride]] = None,
    ):
        self.primary = primary
        self.fallback = fallback
        self.overrides = overrides or []

    async def resolve(self) -> ResolvedClinicSet:
        clinics, primary_status = await _attempt(self.primary)
        if primary_status == SourceStatus.OK:
            logger.info("Loaded %d clinic(s) from %s", len(clinics), self.primary.source_id)
            return ResolvedClinicSet(
                clinics=finalize(clinics, self.overrides),
                source=Source.PRIMARY,
                primary_status=primary_status,
                fallback_status=SourceStatus.SKIPPED,
            )

        clinics, fallback_status = await _attempt(self.fallback)
        if fallback_status == SourceStatus.OK:
            logger.info("Loaded %d clinic(s) from fallback %s", len(clinics), self.fallback.source_id)
        else:
            logger.error("No clinic data available from any source")
        return ResolvedClinicSet(
            clinics=finalize(clinics, self.overrides),
            source=Source.FALLBACK,
            primary_status=primary_status,
            fallback_status=fallback_status,
        )
