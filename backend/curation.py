# Curation overrides - hand corrections for known clinics, keyed by dedup key
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models import Clinic, dedup_key
from normalizer import normalize_record

logger = logging.getLogger(__name__)


@dataclass
class CurationOverride:
    """Patch for one clinic. Matched on the exact dedup key, never by substring."""
    key: str
    set: Dict[str, Any] = field(default_factory=dict)
    remove: bool = False
    note: str = ""


def parse_overrides(entries: Any) -> List[CurationOverride]:
    """Build overrides from a decoded JSON array, skipping malformed entries."""
    if not isinstance(entries, list):
        logger.warning("Curation overrides must be a JSON array, got %s", type(entries).__name__)
        return []

    overrides = []
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("key"), str):
            logger.warning("Skipping curation override without a key: %r", entry)
            continue
        patch = entry.get("set", {})
        if not isinstance(patch, dict):
            logger.warning("Skipping curation override %s: 'set' must be an object", entry["key"])
            continue
        name, _, address = entry["key"].partition("|")
        overrides.append(CurationOverride(
            key=dedup_key(name, address),
            set=patch,
            remove=bool(entry.get("remove", False)),
            note=str(entry.get("note", "")),
        ))
    return overrides


def load_overrides(path: Optional[str]) -> List[CurationOverride]:
    """
    Load overrides from a JSON file.

    Returns:
        Overrides, or an empty list if the file is missing or unreadable
    """
    if not path or not os.path.exists(path):
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            return parse_overrides(json.load(f))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Failed to load curation overrides from %s: %s", path, e)
        return []


def apply_overrides(clinics: List[Clinic], overrides: List[CurationOverride]) -> List[Clinic]:
    """Return a new list with every matching override applied once, in list order."""
    if not overrides:
        return list(clinics)

    by_key = {o.key: o for o in overrides}
    patched = []
    for clinic in clinics:
        override = by_key.get(clinic.key)
        if override is None:
            patched.append(clinic)
            continue
        if override.remove:
            logger.info("Curation: removed %s", clinic.name)
            continue

        record = clinic.to_dict()
        record.update(override.set)
        corrected = normalize_record(record)
        if corrected is None:
            logger.warning("Curation override for %s blanks the name; dropping clinic", clinic.name)
            continue
        logger.debug("Curation: patched %s (%s)", clinic.name, ", ".join(sorted(override.set)))
        patched.append(corrected)
    return patched
