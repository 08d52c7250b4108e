import logging
from typing import Optional

import requests

from .auth import InvalidationListener
from .config import Settings, settings as default_settings
from .dashboard import DashboardAggregator
from .pipeline import RequestPipeline
from .resources import (
    AnalyticsAPI,
    AppointmentAPI,
    AuthAPI,
    CNNAPI,
    DoctorAPI,
    HealthAPI,
    ImageAPI,
    PatientAPI,
    ProfileAPI,
)
from .schemas import AuthResponse, HealthStatus, Identity, RegisterRequest
from .session import Session, SessionStore
from .storage import FileStorage, KeyValueStorage

logger = logging.getLogger(__name__)


class DrMarioClient:
    """
    One session context: a SessionStore shared by the pipeline and every
    resource client. Build one per signed-in user.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        storage: Optional[KeyValueStorage] = None,
        http: Optional[requests.Session] = None,
    ):
        self.settings = settings or default_settings
        if storage is None:
            storage = FileStorage(self.settings.SESSION_DIR)
        self.session = SessionStore(storage, self.settings)
        self.pipeline = RequestPipeline(self.session, self.settings, http)

        self.auth = AuthAPI(self.pipeline)
        self.profile = ProfileAPI(self.pipeline)
        self.patients = PatientAPI(self.pipeline)
        self.doctors = DoctorAPI(self.pipeline)
        self.images = ImageAPI(self.pipeline)
        self.cnn = CNNAPI(self.pipeline)
        self.appointments = AppointmentAPI(self.pipeline)
        self.analytics = AnalyticsAPI(self.pipeline)
        self.health = HealthAPI(self.pipeline)

    # =========================
    # Session
    # =========================

    @property
    def current(self) -> Session:
        return self.session.get()

    def on_session_invalidated(self, listener: InvalidationListener) -> None:
        self.pipeline.on_invalidated(listener)

    def login(self, email: str, password: str) -> Identity:
        auth = AuthResponse.model_validate(self.auth.login(email, password))
        self.session.set(auth.token, auth.user)
        logger.info("Logged in as %s (%s)", auth.user.email, auth.user.role.value)
        return auth.user

    def register(self, data: RegisterRequest) -> Identity:
        auth = AuthResponse.model_validate(self.auth.register(data))
        self.session.set(auth.token, auth.user)
        logger.info("Registered %s (%s)", auth.user.email, auth.user.role.value)
        return auth.user

    def logout(self) -> None:
        self.session.clear()
        logger.info("Logged out")

    def refresh_identity(self) -> Identity:
        """Re-read the profile and keep the stored identity in step with it."""
        identity = Identity.model_validate(self.profile.get()["user"])
        token = self.session.get().token
        if token:
            self.session.set(token, identity)
        return identity

    # =========================
    # Views / checks
    # =========================

    def dashboard(self, parallel: Optional[bool] = None) -> DashboardAggregator:
        return DashboardAggregator(self.images, self.analytics, self.session, parallel, self.settings)

    def check_health(self) -> HealthStatus:
        return HealthStatus.model_validate(self.health.check())

    def close(self) -> None:
        self.pipeline.close()
