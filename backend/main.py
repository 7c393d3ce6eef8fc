# Backend main entry point - Dane County vet directory API
import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from acquisition import AcquisitionError
from directory import SORT_BY_NAME, apply_view, clinic_detail
from models import ResolvedClinicSet, dedup_key
from service import describe_state, find_clinic, get_directory
from settings import Settings, configure_logging

settings = Settings.from_env()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Dane County Vet Directory API")

# Configure CORS - allow local dev and deployed frontend
_allowed_origins = [
    "http://localhost:5173",
    "http://localhost:5174",
]
if settings.frontend_url:
    _allowed_origins.append(settings.frontend_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class ClinicOut(BaseModel):
    name: str
    address: str
    city: str
    phone: str
    categories: List[str]
    photoUrl: Optional[str] = None
    hours: Optional[str] = None
    websiteUrl: Optional[str] = None
    googleRating: Optional[float] = None
    googleReviewCount: Optional[int] = None
    googleMapsUrl: Optional[str] = None


class DirectoryResponse(BaseModel):
    source: str
    state: str
    message: str
    total: int
    clinics: List[ClinicOut]


class ClinicDetailResponse(BaseModel):
    clinic: ClinicOut
    key: str
    fullAddress: str
    mapsUrl: str
    websiteUrl: Optional[str] = None
    showRating: bool
    isEmergency: bool
    acceptsAppointmentRequests: bool


class AppointmentRequest(BaseModel):
    clinicName: str = Field(min_length=1)
    clinicAddress: str = Field(min_length=1)
    ownerName: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str = Field(min_length=1)
    service: str = Field(min_length=1)


async def _load() -> ResolvedClinicSet:
    try:
        return await get_directory()
    except AcquisitionError as e:
        logger.error("Clinic data unavailable: %s", e)
        raise HTTPException(
            status_code=503,
            detail="Failed to fetch clinic data. Please try again later.",
        )


@app.get("/")
def read_root():
    return {"message": "Dane County Vet Directory API"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/clinics", response_model=DirectoryResponse)
async def list_clinics(
    search: str = "",
    emergencyOnly: bool = False,
    sortBy: Literal["name", "rating"] = SORT_BY_NAME,
):
    """Directory listing after search, emergency filter and sort"""
    resolved = await _load()
    visible = apply_view(resolved.clinics, search, emergencyOnly, sortBy)
    state, message = describe_state(resolved, visible)
    return DirectoryResponse(
        source=resolved.source.value,
        state=state,
        message=message,
        total=len(resolved.clinics),
        clinics=[ClinicOut(**c.to_dict()) for c in visible],
    )


@app.get("/clinics/featured", response_model=List[ClinicOut])
async def featured_clinics(limit: int = Query(3, ge=1, le=20)):
    """First few clinics for the home page"""
    resolved = await _load()
    return [ClinicOut(**c.to_dict()) for c in resolved.clinics[:limit]]


@app.get("/clinics/detail", response_model=ClinicDetailResponse)
async def get_clinic_detail(name: str, address: str):
    """Detail view for the clinic with this name and address"""
    resolved = await _load()
    clinic = find_clinic(resolved.clinics, dedup_key(name, address))
    if not clinic:
        raise HTTPException(status_code=404, detail="Clinic not found")
    return clinic_detail(clinic)


@app.post("/appointments")
async def request_appointment(request: AppointmentRequest) -> Dict[str, Any]:
    """
    Acknowledge an appointment request. Nothing is sent anywhere; the clinic
    contacts the owner through its own channels.
    """
    resolved = await _load()
    clinic = find_clinic(resolved.clinics, dedup_key(request.clinicName, request.clinicAddress))
    if not clinic:
        raise HTTPException(status_code=404, detail="Clinic not found")

    detail = clinic_detail(clinic)
    if not detail["acceptsAppointmentRequests"]:
        raise HTTPException(
            status_code=409,
            detail=f"For urgent matters, please call the clinic directly: {clinic.phone}",
        )

    logger.info("Appointment request received for %s", clinic.name)
    return {
        "status": "received",
        "clinic": clinic.name,
        "message": (
            "The clinic will contact you shortly to confirm your appointment. "
            "No email was actually sent."
        ),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
