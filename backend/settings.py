# Service configuration from environment (.env supported)
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()  # Load .env so local reviewers can point at their own table

DATA_DIR = Path(__file__).parent / "data"

MODE_TABLE = "table"
MODE_ACQUISITION = "acquisition"

DEFAULT_TABLE = "clinics"
DEFAULT_CACHE_TTL_HOURS = 24
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_ENRICH_CONCURRENCY = 5


def _env(name: str, default: str = "") -> str:
    return os.environ.get(f"VETDIR_{name}", default)


@dataclass
class Settings:
    data_mode: str = MODE_TABLE
    supabase_url: str = ""
    supabase_key: str = ""
    clinics_table: str = DEFAULT_TABLE
    fallback_path: str = str(DATA_DIR / "clinics.json")
    curation_path: str = str(DATA_DIR / "curation_overrides.json")
    cache_path: str = ".vetdir_cache.json"
    cache_ttl_hours: float = DEFAULT_CACHE_TTL_HOURS
    gemini_api_key: str = ""
    gemini_model: str = DEFAULT_GEMINI_MODEL
    enrich_concurrency: int = DEFAULT_ENRICH_CONCURRENCY
    log_level: str = "INFO"
    frontend_url: Optional[str] = None

    @property
    def cache_ttl_ms(self) -> int:
        return int(self.cache_ttl_hours * 60 * 60 * 1000)

    @classmethod
    def from_env(cls) -> "Settings":
        """Read VETDIR_* variables, falling back to defaults."""
        defaults = cls()
        mode = _env("DATA_MODE", MODE_TABLE).lower()
        if mode not in (MODE_TABLE, MODE_ACQUISITION):
            raise ValueError(f"VETDIR_DATA_MODE must be '{MODE_TABLE}' or '{MODE_ACQUISITION}', got {mode!r}")
        return cls(
            data_mode=mode,
            supabase_url=_env("SUPABASE_URL").rstrip("/"),
            supabase_key=_env("SUPABASE_KEY"),
            clinics_table=_env("CLINICS_TABLE", DEFAULT_TABLE),
            fallback_path=_env("FALLBACK_PATH", defaults.fallback_path),
            curation_path=_env("CURATION_PATH", defaults.curation_path),
            cache_path=_env("CACHE_PATH", defaults.cache_path),
            cache_ttl_hours=float(_env("CACHE_TTL_HOURS", str(DEFAULT_CACHE_TTL_HOURS))),
            gemini_api_key=_env("GEMINI_API_KEY"),
            gemini_model=_env("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
            enrich_concurrency=int(_env("ENRICH_CONCURRENCY", str(DEFAULT_ENRICH_CONCURRENCY))),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            # Kept unprefixed for the existing frontend deploy
            frontend_url=os.environ.get("FRONTEND_URL") or None,
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
