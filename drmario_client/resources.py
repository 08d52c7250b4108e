from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

from pydantic import BaseModel

from .errors import InvalidResponse
from .pipeline import RequestPipeline


@dataclass(frozen=True)
class Operation:
    method: str
    path: str
    body: tuple[str, ...] = ()  # fixed JSON body fields, empty means free-form payload
    multipart: bool = False
    versioned: bool = True
    intercept: bool = True
    raw: bool = False  # return bytes instead of decoded JSON

    def render_path(self, path_params: dict) -> str:
        return self.path.format(**{k: quote(str(v), safe="") for k, v in path_params.items()})


OPERATIONS: dict[tuple[str, str], Operation] = {
    # auth
    ("auth", "register"): Operation("POST", "/auth/register"),
    ("auth", "login"): Operation("POST", "/auth/login"),
    ("profile", "get"): Operation("GET", "/profile"),
    ("profile", "update"): Operation("PUT", "/profile"),
    # patients
    ("patients", "profile"): Operation("GET", "/patients/profile"),
    ("patients", "update_profile"): Operation("PUT", "/patients/profile"),
    ("patients", "list"): Operation("GET", "/patients"),
    ("patients", "get"): Operation("GET", "/patients/{id}"),
    ("patients", "images"): Operation("GET", "/patients/{id}/images"),
    # doctors
    ("doctors", "list"): Operation("GET", "/doctors"),
    ("doctors", "get"): Operation("GET", "/doctors/{id}"),
    ("doctors", "profile"): Operation("GET", "/doctors/profile"),
    ("doctors", "update_profile"): Operation("PUT", "/doctors/profile"),
    # images
    ("images", "upload"): Operation("POST", "/images/upload", multipart=True),
    ("images", "detect"): Operation("POST", "/images/detect", body=("image_id",)),
    ("images", "scan_cnn"): Operation("POST", "/images/scan-cnn", body=("image_id", "analysis_type")),
    ("images", "list"): Operation("GET", "/images"),
    ("images", "get"): Operation("GET", "/images/{id}"),
    ("images", "file"): Operation("GET", "/images/{id}/file", raw=True),
    ("cnn", "health"): Operation("GET", "/cnn/health"),
    # appointments
    ("appointments", "create"): Operation("POST", "/appointments"),
    ("appointments", "list"): Operation("GET", "/appointments"),
    ("appointments", "get"): Operation("GET", "/appointments/{id}"),
    ("appointments", "update"): Operation("PUT", "/appointments/{id}"),
    ("appointments", "cancel"): Operation("DELETE", "/appointments/{id}"),
    # analytics
    ("analytics", "stats"): Operation("GET", "/analytics/stats"),
    ("analytics", "patient"): Operation("GET", "/analytics/patient/{id}"),
    ("analytics", "doctor"): Operation("GET", "/analytics/doctor/{id}"),
    # HEALTH_URL itself, no credential
    ("health", "check"): Operation("GET", "", versioned=False, intercept=False),
}


def _as_payload(payload: Any) -> Any:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", exclude_none=True)
    return payload


class ResourceClient:
    """Maps domain actions onto OPERATIONS. Errors are left to the pipeline."""

    domain = ""

    def __init__(self, pipeline: RequestPipeline):
        self.pipeline = pipeline

    def call(
        self,
        action: str,
        payload: Any = None,
        *,
        files: Optional[dict] = None,
        path_params: Optional[dict] = None,
        **fields: Any,
    ) -> Any:
        op = OPERATIONS[(self.domain, action)]
        path = op.render_path(path_params or {})
        if op.body:
            payload = {name: fields[name] for name in op.body}

        if op.multipart:
            response = self.pipeline.send(
                op.method, path, data=_as_payload(payload), files=files,
                versioned=op.versioned, intercept=op.intercept,
            )
        else:
            response = self.pipeline.send(
                op.method, path, json=_as_payload(payload),
                versioned=op.versioned, intercept=op.intercept,
            )

        if op.raw:
            return response.content
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponse(f"{op.method} {path}: body is not JSON", response) from e


class AuthAPI(ResourceClient):
    domain = "auth"

    def register(self, data):
        return self.call("register", data)

    def login(self, email: str, password: str):
        return self.call("login", {"email": email, "password": password})


class ProfileAPI(ResourceClient):
    domain = "profile"

    def get(self):
        return self.call("get")

    def update(self, data):
        return self.call("update", data)


class PatientAPI(ResourceClient):
    domain = "patients"

    def get_profile(self):
        return self.call("profile")

    def update_profile(self, data):
        return self.call("update_profile", data)

    def get_all(self):
        return self.call("list")

    def get_by_id(self, patient_id):
        return self.call("get", path_params={"id": patient_id})

    def get_images(self, patient_id):
        return self.call("images", path_params={"id": patient_id})


class DoctorAPI(ResourceClient):
    domain = "doctors"

    def get_all(self):
        return self.call("list")

    def get_by_id(self, doctor_id):
        return self.call("get", path_params={"id": doctor_id})

    def get_profile(self):
        return self.call("profile")

    def update_profile(self, data):
        return self.call("update_profile", data)


class ImageAPI(ResourceClient):
    domain = "images"

    def upload(self, file, image_type: str, filename: str = "retina.jpg", patient_id=None, notes=None):
        """
        file: bytes or a binary file object.
        Doctors must pass patient_id; patients upload for themselves.
        """
        form = {"image_type": image_type}
        if patient_id is not None:
            form["patient_id"] = str(patient_id)
        if notes:
            form["notes"] = notes
        return self.call("upload", form, files={"image": (filename, file)})

    def detect(self, image_id):
        return self.call("detect", image_id=str(image_id))

    def scan_with_cnn(self, image_id, analysis_type: str = "basic"):
        return self.call("scan_cnn", image_id=str(image_id), analysis_type=analysis_type)

    def get_all(self):
        return self.call("list")

    def get_by_id(self, image_id):
        return self.call("get", path_params={"id": image_id})

    def get_file(self, image_id) -> bytes:
        return self.call("file", path_params={"id": image_id})

    def get_cnn_health(self):
        return CNNAPI(self.pipeline).health()


class CNNAPI(ResourceClient):
    domain = "cnn"

    def health(self):
        return self.call("health")


class AppointmentAPI(ResourceClient):
    domain = "appointments"

    def create(self, data):
        return self.call("create", data)

    def get_all(self):
        return self.call("list")

    def get_by_id(self, appointment_id):
        return self.call("get", path_params={"id": appointment_id})

    def update(self, appointment_id, data):
        return self.call("update", data, path_params={"id": appointment_id})

    def cancel(self, appointment_id):
        return self.call("cancel", path_params={"id": appointment_id})


class AnalyticsAPI(ResourceClient):
    domain = "analytics"

    def get_stats(self):
        return self.call("stats")

    def get_patient_analytics(self, patient_id):
        return self.call("patient", path_params={"id": patient_id})

    def get_doctor_analytics(self, doctor_id):
        return self.call("doctor", path_params={"id": doctor_id})


class HealthAPI(ResourceClient):
    domain = "health"

    def check(self):
        return self.call("check")
