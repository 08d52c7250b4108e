from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .models import ImageStatus, ImageType, Phase, Role


class _Payload(BaseModel):
    # backend speaks snake_case; sessions saved by the web app used camelCase
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# =========================
# Auth
# =========================

class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str = Field(min_length=6)
    first_name: str
    last_name: str
    role: Role
    phone: Optional[str] = None


class Identity(_Payload):
    id: str
    role: Role
    first_name: str = Field(validation_alias=AliasChoices("first_name", "firstName"))
    last_name: str = Field(validation_alias=AliasChoices("last_name", "lastName"))
    email: str
    phone: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class AuthResponse(_Payload):
    token: str
    user: Identity


# =========================
# Images
# =========================

class ImageRecord(_Payload):
    id: str
    file_name: str = Field(validation_alias=AliasChoices("file_name", "fileName"))
    status: ImageStatus
    upload_date: datetime = Field(validation_alias=AliasChoices("upload_date", "uploadDate"))
    image_type: ImageType = Field(validation_alias=AliasChoices("image_type", "imageType"))
    patient_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("patient_id", "patientId"))
    doctor_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("doctor_id", "doctorId"))
    file_size: Optional[int] = Field(default=None, validation_alias=AliasChoices("file_size", "fileSize"))
    notes: Optional[str] = None


class DetectionResult(_Payload):
    id: str
    image_id: str
    has_dr: bool
    dr_stage: str
    confidence: float
    has_macular_edema: bool = False
    has_hemorrhages: bool = False
    has_exudates: bool = False
    has_microaneurysms: bool = False
    processing_time: Optional[float] = None
    model_version: Optional[str] = None


# =========================
# Appointments
# =========================

class AppointmentRequest(BaseModel):
    patient_id: str
    doctor_id: str
    appointment_date: str
    duration: int = Field(ge=15, le=120)
    notes: Optional[str] = None


class Appointment(_Payload):
    id: str
    patient_id: str
    doctor_id: str
    appointment_date: datetime
    duration: int
    status: str  # scheduled, completed, cancelled; not validated by the backend
    notes: Optional[str] = None


# =========================
# Analytics / health
# =========================

class SystemStats(_Payload):
    total_users: int = 0
    total_images: int = 0


class DetectionStats(_Payload):
    processed: int = 0
    dr_detected: int = 0


class AnalyticsSnapshot(_Payload):
    system_stats: Optional[SystemStats] = None
    detection_stats: Optional[DetectionStats] = None


class HealthStatus(_Payload):
    status: str
    service: Optional[str] = None
    version: Optional[str] = None


# =========================
# Dashboard
# =========================

class ErrorInfo(BaseModel):
    message: str
    status_code: Optional[int] = None
    detail: Optional[str] = None


class DashboardViewState(BaseModel):
    phase: Phase = Phase.idle
    images: list[ImageRecord] = Field(default_factory=list)
    analytics: Optional[AnalyticsSnapshot] = None
    error: Optional[ErrorInfo] = None

    @property
    def total(self) -> int:
        return len(self.images)

    @property
    def processed(self) -> int:
        return sum(1 for img in self.images if img.status == ImageStatus.processed)

    @property
    def pending(self) -> int:
        return sum(1 for img in self.images if img.status == ImageStatus.pending)
