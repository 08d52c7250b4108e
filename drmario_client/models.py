import enum


class Role(str, enum.Enum):
    patient = "patient"
    doctor = "doctor"

    @property
    def can_view_analytics(self) -> bool:
        return self is Role.doctor


class ImageStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    processed = "processed"
    failed = "failed"
    error = "error"  # set by the backend when detection fails


class ImageType(str, enum.Enum):
    left_eye = "left_eye"
    right_eye = "right_eye"


class Phase(str, enum.Enum):
    idle = "idle"
    loading = "loading"
    ready = "ready"
    failed = "failed"
