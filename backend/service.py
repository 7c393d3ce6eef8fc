# Directory service - wires sources to a resolver and keeps the resolved list in memory
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from acquisition import AcquisitionError, AcquisitionPipeline, GeminiClient
from clinic_cache import CacheManager, JsonFileStorage
from curation import load_overrides
from models import Clinic, ResolvedClinicSet, Source, SourceStatus
from resolver import SourceResolver
from settings import MODE_ACQUISITION, Settings
from sources import StaticSnapshotSource, SupabaseTableSource

logger = logging.getLogger(__name__)

Resolve = Callable[[], Awaitable[ResolvedClinicSet]]

STATE_OK = "ok"
STATE_FALLBACK = "fallback"
STATE_NO_DATA = "no_data"
STATE_NO_MATCHES = "no_matches"

# In-memory store: one resolution per process, reused by every request
_resolved: Optional[ResolvedClinicSet] = None
_resolve: Optional[Resolve] = None
# Created lazily so it binds to the serving event loop
_lock: Optional[asyncio.Lock] = None


def build_resolve(settings: Settings) -> Resolve:
    """Pick the resolution strategy for the configured data mode."""
    overrides = load_overrides(settings.curation_path)

    if settings.data_mode == MODE_ACQUISITION:
        pipeline = AcquisitionPipeline(
            GeminiClient(settings.gemini_api_key, settings.gemini_model),
            overrides=overrides,
            enrich_concurrency=settings.enrich_concurrency,
        )
        cache = CacheManager(JsonFileStorage(settings.cache_path), ttl_ms=settings.cache_ttl_ms)

        async def resolve_acquired() -> ResolvedClinicSet:
            try:
                return await cache.resolve(pipeline.fetch_live)
            except Exception as e:
                raise AcquisitionError(f"Could not retrieve clinic information: {e}") from e

        return resolve_acquired

    resolver = SourceResolver(
        SupabaseTableSource(settings.supabase_url, settings.supabase_key, settings.clinics_table),
        StaticSnapshotSource(settings.fallback_path),
        overrides=overrides,
    )
    return resolver.resolve


def configure(resolve: Optional[Resolve]) -> None:
    """Install a resolution strategy and forget any resolved list."""
    global _resolve, _resolved, _lock
    _resolve = resolve
    _resolved = None
    _lock = None


def _resolution_lock() -> asyncio.Lock:
    global _lock
    if _lock is None:
        _lock = asyncio.Lock()
    return _lock


def reset_directory() -> None:
    """Forget the resolved list (for testing); the next request resolves again."""
    global _resolved
    _resolved = None


async def get_directory() -> ResolvedClinicSet:
    """
    Resolved clinic list, resolving on first use.

    Raises:
        AcquisitionError: acquisition mode with no live data and no cache
    """
    global _resolve, _resolved
    if _resolved is not None:
        return _resolved

    # One resolution cycle at a time; later callers reuse its result
    async with _resolution_lock():
        if _resolved is None:
            if _resolve is None:
                _resolve = build_resolve(Settings.from_env())
            _resolved = await _resolve()
            logger.info("Directory ready: %d clinic(s) from %s", len(_resolved.clinics), _resolved.source.value)
    return _resolved


def find_clinic(clinics: List[Clinic], key: str) -> Optional[Clinic]:
    return next((c for c in clinics if c.key == key), None)


def describe_state(resolved: ResolvedClinicSet, visible: List[Clinic]) -> Tuple[str, str]:
    """Presentation state and message for a directory response."""
    if resolved.is_empty:
        if resolved.all_sources_failed:
            return STATE_NO_DATA, (
                "Clinic data could not be loaded from any source. "
                "Check the data source configuration and try again later."
            )
        return STATE_NO_DATA, (
            "No usable clinic records were found in the clinic table or the backup list. "
            "Check that they are populated."
        )
    if not visible:
        return STATE_NO_MATCHES, "No clinics found. Try adjusting your search terms."
    if resolved.source == Source.FALLBACK:
        return STATE_FALLBACK, "Showing a saved copy of the directory; live data is unavailable."
    if resolved.source == Source.CACHE and resolved.primary_status == SourceStatus.ERROR:
        return STATE_FALLBACK, "Showing clinic data saved from an earlier fetch; live data is unavailable."
    return STATE_OK, ""
