"""
Test the self-contained acquisition pipeline and its Gemini client
"""
import asyncio
import json

import httpx
import pytest

from acquisition import AcquisitionPipeline, GeminiClient, extract_json_array
from clinic_cache import CacheManager, MemoryStorage
from conftest import FakeGenerativeClient
from curation import CurationOverride
from models import Source
from sources import MalformedPayload, SourceError

MODEL_ROWS = [
    {"name": "Verona Family Veterinary", "address": "301 Enterprise Dr", "city": "Verona",
     "phone": "(608) 555-0136", "categories": ["General Practice"], "websiteUrl": "https://verona.example"},
    {"name": "Middleton Pet Hospital", "address": "7502 University Ave", "city": "Middleton",
     "phone": "(608) 555-0113", "categories": ["General Practice"]},
    {"name": "MIDDLETON PET HOSPITAL ", "address": "7502 university ave", "city": "Middleton",
     "phone": "duplicate", "categories": []},
    {"name": "Capital City Veterinary Clinic", "address": "210 E Washington Ave", "city": "Madison",
     "phone": "608", "categories": ["General Practice"], "websiteUrl": "capitalcity.example"},
]


def fenced(rows):
    return "Here is the list you asked for:\n```json\n" + json.dumps(rows) + "\n```\nLet me know!"


class TestExtractJsonArray:
    def test_strips_prose_and_fencing(self):
        assert extract_json_array(fenced([{"name": "A"}])) == [{"name": "A"}]

    def test_no_brackets_is_malformed(self):
        with pytest.raises(MalformedPayload):
            extract_json_array("Sorry, I could not find any clinics.")

    def test_broken_json_is_malformed(self):
        with pytest.raises(MalformedPayload):
            extract_json_array("[{\"name\": \"A\",]")


class TestFetchLive:
    def _answer(self, websites=None, fail_for=()):
        websites = websites or {}

        def answer(prompt):
            if prompt.startswith("List every veterinary clinic"):
                return fenced(MODEL_ROWS)
            for name in fail_for:
                if name in prompt:
                    return SourceError("gemini", "rate limited")
            for name, url in websites.items():
                if name in prompt:
                    return url
            return "NONE"
        return answer

    def test_normalizes_dedupes_and_sorts(self):
        client = FakeGenerativeClient(self._answer())
        clinics = asyncio.run(AcquisitionPipeline(client).fetch_live())

        assert [c.name for c in clinics] == [
            "Capital City Veterinary Clinic",
            "Middleton Pet Hospital",
            "Verona Family Veterinary",
        ]
        middleton = clinics[1]
        assert middleton.phone == "(608) 555-0113"

    def test_enriches_missing_websites_only(self):
        client = FakeGenerativeClient(self._answer(websites={
            "Middleton Pet Hospital": "https://middleton.example\n",
            "Capital City Veterinary Clinic": "<https://capitalcity.example>",
        }))
        clinics = asyncio.run(AcquisitionPipeline(client).fetch_live())
        urls = {c.name: c.websiteUrl for c in clinics}

        assert urls == {
            "Capital City Veterinary Clinic": "https://capitalcity.example",
            "Middleton Pet Hospital": "https://middleton.example",
            "Verona Family Veterinary": "https://verona.example",
        }
        # One directory prompt plus one lookup per clinic lacking a valid URL
        assert len(client.prompts) == 3

    def test_lookup_failure_is_isolated(self):
        client = FakeGenerativeClient(self._answer(
            websites={"Middleton Pet Hospital": "https://middleton.example"},
            fail_for=("Capital City Veterinary Clinic",),
        ))
        clinics = asyncio.run(AcquisitionPipeline(client, enrich_concurrency=1).fetch_live())
        urls = {c.name: c.websiteUrl for c in clinics}

        assert urls["Middleton Pet Hospital"] == "https://middleton.example"
        assert urls["Capital City Veterinary Clinic"] == "capitalcity.example"

    def test_overrides_applied(self):
        overrides = [CurationOverride(key="capital city veterinary clinic|210 e washington ave",
                                      set={"phone": "(608) 555-0142"})]
        clinics = asyncio.run(AcquisitionPipeline(FakeGenerativeClient(self._answer()), overrides).fetch_live())
        assert clinics[0].phone == "(608) 555-0142"

    def test_no_usable_clinics_is_malformed(self):
        client = FakeGenerativeClient(lambda prompt: '[{"address": "no name"}]')
        with pytest.raises(MalformedPayload):
            asyncio.run(AcquisitionPipeline(client).fetch_live())

    def test_with_cache_end_to_end(self):
        """Live fetch fills the cache; a later failure serves the cached list"""
        cache = CacheManager(MemoryStorage(), ttl_ms=1)
        pipeline = AcquisitionPipeline(FakeGenerativeClient(self._answer()))
        first = asyncio.run(cache.resolve(pipeline.fetch_live, clock=lambda: 1000))
        assert first.source == Source.PRIMARY

        broken = AcquisitionPipeline(FakeGenerativeClient(lambda prompt: SourceError("gemini", "down")))
        second = asyncio.run(cache.resolve(broken.fetch_live, clock=lambda: 5000))
        assert second.source == Source.CACHE
        assert second.clinics == first.clinics


class TestGeminiClient:
    def test_search_request_and_text_extraction(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [{"text": "[{\"name\": "}, {"text": "\"A\"}]"}]}}],
            })

        client = GeminiClient("secret", "gemini-test", transport=httpx.MockTransport(handler))
        text = asyncio.run(client.generate("find clinics", use_search=True))

        assert text == '[{"name": "A"}]'
        assert "models/gemini-test:generateContent" in seen["url"]
        assert "key=secret" in seen["url"]
        assert seen["body"]["tools"] == [{"google_search": {}}]
        assert "generationConfig" not in seen["body"]

    def test_schema_request(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "[]"}]}}]})

        client = GeminiClient("secret", "gemini-test", transport=httpx.MockTransport(handler))
        asyncio.run(client.generate("x", schema={"type": "ARRAY"}))
        assert seen["body"]["generationConfig"]["responseSchema"] == {"type": "ARRAY"}

    def test_http_error_raises_source_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(429, json={"error": "quota"}))
        client = GeminiClient("secret", "gemini-test", transport=transport)
        with pytest.raises(SourceError):
            asyncio.run(client.generate("x"))

    def test_missing_candidates_is_malformed(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"promptFeedback": {}}))
        client = GeminiClient("secret", "gemini-test", transport=transport)
        with pytest.raises(MalformedPayload):
            asyncio.run(client.generate("x"))

    def test_missing_key_raises_source_error(self):
        with pytest.raises(SourceError):
            asyncio.run(GeminiClient("", "gemini-test").generate("x"))
