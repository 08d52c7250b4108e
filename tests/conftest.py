import json
import uuid
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Optional
from urllib.parse import urlsplit

import jwt
import pytest
import requests
from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, UploadFile
from fastapi.testclient import TestClient
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from drmario_client.client import DrMarioClient
from drmario_client.config import Settings
from drmario_client.schemas import Identity, LoginRequest, RegisterRequest
from drmario_client.session import SessionStore
from drmario_client.storage import MemoryStorage

API_ROOT = "http://api.test"
JWT_SECRET = "test-secret"


def make_response(request, status: int, payload=None, content: bytes = b"", headers=None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.request = request
    response.url = request.url
    response.reason = HTTPStatus(status).phrase
    response.encoding = "utf-8"
    if headers is not None:
        response.headers = CaseInsensitiveDict(headers)
    if payload is not None:
        response._content = json.dumps(payload).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = content
    return response


# =========================
# Scripted transport
# =========================

class StubAdapter(BaseAdapter):
    """
    Answers from a route table keyed by (method, path). Queued answers are
    consumed in order, the last one repeats. Unknown routes get a 404.
    """

    def __init__(self):
        super().__init__()
        self.routes: dict[tuple[str, str], list] = {}
        self.calls: list[requests.PreparedRequest] = []
        self.send_kwargs: list[dict] = []

    def add(self, method: str, path: str, status: int = 200, payload=None, content: bytes = b"", exc: Optional[Exception] = None):
        self.routes.setdefault((method, path), []).append((status, payload, content, exc))

    def paths(self, method: Optional[str] = None) -> list[str]:
        return [urlsplit(r.url).path for r in self.calls if method is None or r.method == method]

    def send(self, request, **kwargs):
        self.calls.append(request)
        self.send_kwargs.append(kwargs)
        queue = self.routes.get((request.method, urlsplit(request.url).path))
        if not queue:
            return make_response(request, 404, {"error": "Not found"})
        status, payload, content, exc = queue.pop(0) if len(queue) > 1 else queue[0]
        if exc is not None:
            raise exc
        return make_response(request, status, payload, content)

    def close(self):
        pass


# =========================
# Fake backend
# =========================

def image_payload(image_id: str, status: str = "processed", patient_id: str = "p-1", **extra) -> dict:
    data = {
        "id": image_id,
        "patient_id": patient_id,
        "file_name": f"{image_id}.jpg",
        "file_size": 1024,
        "image_type": "left_eye",
        "upload_date": "2025-03-01T10:00:00Z",
        "status": status,
        "notes": "",
    }
    data.update(extra)
    return data


class FakeBackend:
    """In-process stand-in for the retinal imaging API."""

    def __init__(self):
        self.users = {
            "p-1": {"id": "p-1", "email": "patient@drmario.test", "first_name": "Pat", "last_name": "Ient",
                    "role": "patient", "phone": "555-0101"},
            "d-1": {"id": "d-1", "email": "doctor@drmario.test", "first_name": "Doc", "last_name": "Tor",
                    "role": "doctor", "phone": ""},
        }
        self.passwords = {"patient@drmario.test": "secret1", "doctor@drmario.test": "secret1"}
        self.images = [
            image_payload("img-1", "processed"),
            image_payload("img-2", "pending"),
            image_payload("img-3", "pending", image_type="right_eye"),
        ]
        self.revoked: set[str] = set()
        self.analytics_broken = False
        self.hits: list[str] = []
        self.app = self._build()

    def create_token(self, user_id: str) -> str:
        payload = {"sub": user_id, "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
        return jwt.encode(payload, JWT_SECRET, algorithm="HS256")

    def _build(self) -> FastAPI:
        app = FastAPI(title="Fake Dr. Mario API")
        backend = self

        def require_user(authorization: str = Header(None)) -> dict:
            if not authorization or not authorization.startswith("Bearer "):
                raise HTTPException(status_code=401, detail="Missing token")
            token = authorization.split(" ", 1)[1]
            if token in backend.revoked:
                raise HTTPException(status_code=401, detail="Invalid token")
            try:
                payload = jwt.decode(token, JWT_SECRET, algorithms=["HS256"])
            except jwt.PyJWTError:
                raise HTTPException(status_code=401, detail="Invalid token")
            return backend.users[payload["sub"]]

        @app.middleware("http")
        async def record_hit(request, call_next):
            backend.hits.append(f"{request.method} {request.url.path}")
            return await call_next(request)

        @app.get("/health")
        def health():
            return {"status": "healthy", "service": "Dr. Mario Retinal Imaging API", "version": "1.0.0"}

        @app.post("/api/v1/auth/login")
        def login(body: LoginRequest):
            if backend.passwords.get(body.email) != body.password:
                raise HTTPException(401, "Invalid credentials")
            user = next(u for u in backend.users.values() if u["email"] == body.email)
            return {"token": backend.create_token(user["id"]), "user": user}

        @app.post("/api/v1/auth/register", status_code=201)
        def register(body: RegisterRequest):
            if body.email in backend.passwords:
                raise HTTPException(409, "User already exists")
            user = body.model_dump(mode="json", exclude={"password"})
            user["id"] = f"u-{len(backend.users) + 1}"
            backend.users[user["id"]] = user
            backend.passwords[body.email] = body.password
            return {"token": backend.create_token(user["id"]), "user": user}

        @app.get("/api/v1/profile")
        def profile(user: dict = Depends(require_user)):
            return {"user": user}

        @app.get("/api/v1/images")
        def list_images(user: dict = Depends(require_user)):
            if user["role"] == "patient":
                return {"images": [i for i in backend.images if i["patient_id"] == user["id"]]}
            return {"images": backend.images}

        @app.post("/api/v1/images/upload", status_code=201)
        async def upload(
            image: UploadFile = File(...),
            image_type: str = Form(...),
            notes: str = Form(""),
            user: dict = Depends(require_user),
        ):
            data = await image.read()
            new_image = image_payload(
                str(uuid.uuid4()), "pending", patient_id=user["id"],
                file_name=image.filename, file_size=len(data), image_type=image_type, notes=notes,
            )
            backend.images.append(new_image)
            return {"message": "Image uploaded successfully", "image": new_image}

        @app.get("/api/v1/analytics/stats")
        def stats(user: dict = Depends(require_user)):
            if user["role"] != "doctor":
                raise HTTPException(403, "Insufficient permissions")
            if backend.analytics_broken:
                raise HTTPException(500, "Analytics backend unavailable")
            processed = sum(1 for i in backend.images if i["status"] == "processed")
            return {
                "system_stats": {"total_users": len(backend.users), "total_images": len(backend.images)},
                "detection_stats": {"processed": processed, "dr_detected": 1},
            }

        return app


class ASGIAdapter(BaseAdapter):
    """Routes requests.Session traffic into a FastAPI app."""

    def __init__(self, app: FastAPI):
        super().__init__()
        self.client = TestClient(app)

    def send(self, request, **kwargs):
        r = self.client.request(request.method, request.url, content=request.body, headers=dict(request.headers))
        return make_response(request, r.status_code, content=r.content, headers=r.headers)

    def close(self):
        self.client.close()


# =========================
# Fixtures
# =========================

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        API_BASE_URL=f"{API_ROOT}/api/v1",
        HEALTH_URL=f"{API_ROOT}/health",
        SESSION_DIR=str(tmp_path / "session"),
    )


@pytest.fixture
def stub() -> StubAdapter:
    return StubAdapter()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def client(settings, storage, stub) -> DrMarioClient:
    http = requests.Session()
    http.mount("http://", stub)
    c = DrMarioClient(settings, storage, http)
    yield c
    c.close()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def live_client(settings, storage, backend) -> DrMarioClient:
    http = requests.Session()
    http.mount("http://", ASGIAdapter(backend.app))
    c = DrMarioClient(settings, storage, http)
    yield c
    c.close()


@pytest.fixture
def doctor() -> Identity:
    return Identity(id="d-1", role="doctor", first_name="Doc", last_name="Tor", email="doctor@drmario.test")


@pytest.fixture
def patient() -> Identity:
    return Identity(id="p-1", role="patient", first_name="Pat", last_name="Ient", email="patient@drmario.test")


@pytest.fixture
def store(settings, storage) -> SessionStore:
    return SessionStore(storage, settings)
