"""
Shared pytest fixtures for the vet directory tests.
"""
import pytest
from fastapi.testclient import TestClient

import service
from main import app
from models import Clinic, ResolvedClinicSet, Source, SourceStatus
from resolver import SourceResolver
from sources import SourceError


class FakeSource:
    """Row source returning canned rows, or raising when error is set."""

    def __init__(self, rows=None, error=None, source_id="fake"):
        self.rows = rows or []
        self.error = error
        self.source_id = source_id
        self.calls = 0

    async def fetch_rows(self):
        self.calls += 1
        if self.error:
            raise SourceError(self.source_id, self.error)
        return list(self.rows)


class FakeGenerativeClient:
    """Generative client answering from a prompt -> text callable."""

    def __init__(self, answer):
        self.answer = answer
        self.prompts = []

    async def generate(self, prompt, schema=None, use_search=False):
        self.prompts.append(prompt)
        result = self.answer(prompt)
        if isinstance(result, Exception):
            raise result
        return result


# Minimal dataset mixing the historical column naming conventions
PRIMARY_ROWS = [
    {
        "clinic_name": "Middleton Pet Hospital",
        "full_address": "7502 University Ave",
        "city": "Middleton",
        "phone_number": "(608) 555-0113",
        "categories": "{General Practice,Dentistry}",
        "google_rating": "4.8",
        "google_review_count": 541,
    },
    {
        "Clinic Name": "Dane County Animal Emergency Center",
        "Address": "4520 Verona Rd",
        "City": "Madison",
        "Phone": "(608) 555-0199",
        "emergency_status": "Emergency",
        "Categories": "Emergency, 24-Hour",
        "rating": 4.3,
    },
    {
        "name": "  ",
        "address": "nowhere",
    },
    {
        "name": "Verona Family Veterinary",
        "address": "301 Enterprise Dr",
        "city": "Verona",
        "phone": "(608) 555-0136",
        "categories": ["General Practice", "Exotics"],
    },
]


@pytest.fixture
def primary_rows():
    return [dict(r) for r in PRIMARY_ROWS]


@pytest.fixture
def resolved_set():
    """Directory resolved from the primary table."""
    clinics = [
        Clinic(name="Capital City Veterinary Clinic", address="210 E Washington Ave", city="Madison",
               phone="(608) 555-0142", categories=["General Practice"], googleRating=4.7,
               googleReviewCount=312, googleMapsUrl="https://maps.example/ccvc",
               websiteUrl="www.capitalcityvet.example"),
        Clinic(name="Dane County Animal Emergency Center", address="4520 Verona Rd", city="Madison",
               phone="(608) 555-0199", categories=["Emergency", "24-Hour"], googleRating=4.3),
        Clinic(name="Middleton Pet Hospital", address="7502 University Ave", city="Middleton",
               phone="(608) 555-0113", categories=["General Practice", "Dentistry"], googleRating=4.8,
               websiteUrl="https://www.middletonpethospital.example"),
        Clinic(name="Stoughton Animal Clinic", address="985 Nygaard St", city="Stoughton",
               phone="(608) 555-0154"),
    ]
    return ResolvedClinicSet(clinics=clinics, source=Source.PRIMARY, primary_status=SourceStatus.OK)


@pytest.fixture
def client():
    """FastAPI TestClient."""
    return TestClient(app)


@pytest.fixture
def directory(resolved_set):
    """Install a fixed resolved set for API tests."""
    async def resolve():
        return resolved_set

    service.configure(resolve)
    yield resolved_set
    service.configure(None)


@pytest.fixture
def install_resolver():
    """Install a SourceResolver built from the given sources."""
    def _install(primary, fallback):
        service.configure(SourceResolver(primary, fallback).resolve)

    yield _install
    service.configure(None)
