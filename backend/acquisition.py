"""
Self-contained acquisition of the clinic list from a generative search API.

Used when no curated table exists: the model is asked for the clinic
directory, the answer is parsed out of whatever prose or code fencing
surrounds it, normalized, deduplicated, enriched with missing website URLs
and patched with the curation overrides.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Protocol

import httpx

from curation import CurationOverride
from models import Clinic
from normalizer import normalize_records
from resolver import dedupe, finalize
from sources import MalformedPayload, SourceError

logger = logging.getLogger(__name__)

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
GENERATION_TIMEOUT = httpx.Timeout(120.0, connect=10.0)

REGION = "Dane County, Wisconsin"

CLINIC_SCHEMA: Dict[str, Any] = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "name": {"type": "STRING"},
            "address": {"type": "STRING"},
            "city": {"type": "STRING"},
            "phone": {"type": "STRING"},
            "categories": {"type": "ARRAY", "items": {"type": "STRING"}},
            "hours": {"type": "STRING"},
            "websiteUrl": {"type": "STRING"},
            "googleRating": {"type": "NUMBER"},
            "googleReviewCount": {"type": "INTEGER"},
            "googleMapsUrl": {"type": "STRING"},
            "photoUrl": {"type": "STRING"},
        },
        "required": ["name", "address", "city", "phone", "categories"],
    },
}

DIRECTORY_PROMPT = (
    f"List every veterinary clinic currently operating in {REGION}. "
    "For each clinic give its name, street address, city, phone number, "
    "opening hours, official website URL, Google rating, Google review count, "
    "Google Maps URL and a list of categories. Use 'Emergency', 'Urgent Care' "
    "or '24-Hour' as categories when they apply, otherwise 'General Practice'. "
    "Respond only with a JSON array matching this schema: {schema}"
)

WEBSITE_PROMPT = (
    "What is the official website URL of the veterinary clinic "
    "\"{name}\" at {address}, {city}, WI? Respond with the URL only, or NONE."
)


class AcquisitionError(Exception):
    """No live clinic data and nothing cached to fall back on."""


class GenerativeClient(Protocol):
    async def generate(self, prompt: str, schema: Optional[Dict[str, Any]] = None, use_search: bool = False) -> str:
        ...


def extract_json_array(text: str) -> List[Any]:
    """Parse the JSON array between the first '[' and the last ']' of a model answer."""
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        raise MalformedPayload("acquisition", "no JSON array in model response")
    try:
        payload = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise MalformedPayload("acquisition", f"invalid JSON array: {e}", e) from e
    if not isinstance(payload, list):
        raise MalformedPayload("acquisition", "model response is not a JSON array")
    return payload


def is_valid_website(url: Optional[str]) -> bool:
    return bool(url) and url.startswith(("http://", "https://"))


class GeminiClient:
    """Minimal generateContent client over httpx."""

    def __init__(self, api_key: str, model: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.model = model
        self._transport = transport

    async def generate(self, prompt: str, schema: Optional[Dict[str, Any]] = None, use_search: bool = False) -> str:
        if not self.api_key:
            raise SourceError("gemini", "API key is not configured")

        body: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        # Search grounding cannot be combined with a response schema
        if use_search:
            body["tools"] = [{"google_search": {}}]
        elif schema is not None:
            body["generationConfig"] = {
                "responseMimeType": "application/json",
                "responseSchema": schema,
            }

        url = GEMINI_ENDPOINT.format(model=self.model)
        try:
            async with httpx.AsyncClient(timeout=GENERATION_TIMEOUT, transport=self._transport) as client:
                response = await client.post(url, params={"key": self.api_key}, json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise SourceError("gemini", f"generateContent failed: {e}", e) from e
        except ValueError as e:
            raise MalformedPayload("gemini", f"invalid JSON: {e}", e) from e

        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedPayload("gemini", "response has no candidate content", e) from e
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


class AcquisitionPipeline:
    def __init__(
        self,
        client: GenerativeClient,
        overrides: Optional[List[CurationOverride]] = None,
        enrich_concurrency: int = 5,
    ):
        self.client = client
        self.overrides = overrides or []
        self.enrich_concurrency = max(1, enrich_concurrency)

    async def fetch_live(self) -> List[Clinic]:
        """
        Ask the model for the directory and build the final clinic list.

        Raises:
            SourceError: the model could not be reached or answered garbage
        """
        prompt = DIRECTORY_PROMPT.format(schema=json.dumps(CLINIC_SCHEMA))
        text = await self.client.generate(prompt, use_search=True)
        rows = extract_json_array(text)

        clinics = dedupe(normalize_records(rows, "acquisition"))
        if not clinics:
            raise MalformedPayload("acquisition", "model returned no usable clinics")

        clinics = await self.enrich_websites(clinics)
        return finalize(clinics, self.overrides)

    async def enrich_websites(self, clinics: List[Clinic]) -> List[Clinic]:
        """Look up missing website URLs concurrently; one failure never fails the batch."""
        missing = [c for c in clinics if not is_valid_website(c.websiteUrl)]
        if not missing:
            return clinics

        found: Dict[str, str] = {}
        semaphore = asyncio.Semaphore(self.enrich_concurrency)

        async def lookup(clinic: Clinic) -> None:
            async with semaphore:
                try:
                    answer = await self.client.generate(
                        WEBSITE_PROMPT.format(name=clinic.name, address=clinic.address, city=clinic.city),
                        use_search=True,
                    )
                except Exception as e:
                    logger.warning("Website lookup failed for %s: %s", clinic.name, e)
                    return
            url = answer.strip().split()[0].strip("<>()\"'") if answer.strip() else ""
            if is_valid_website(url):
                found[clinic.key] = url

        await asyncio.gather(*(lookup(c) for c in missing))
        logger.info("Found website URLs for %d of %d clinic(s)", len(found), len(missing))

        return [
            replace(c, websiteUrl=found[c.key]) if c.key in found else c
            for c in clinics
        ]
