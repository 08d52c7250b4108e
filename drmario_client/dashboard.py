import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from pydantic import ValidationError

from .config import Settings, settings as default_settings
from .errors import APIError, HTTPStatusError, InvalidResponse, InvalidTransition
from .models import Phase
from .resources import AnalyticsAPI, ImageAPI
from .schemas import AnalyticsSnapshot, DashboardViewState, ErrorInfo, ImageRecord
from .session import SessionStore

logger = logging.getLogger(__name__)

LOAD_ERROR_MESSAGE = "Failed to load dashboard data"

StateListener = Callable[[DashboardViewState], None]


class DashboardAggregator:
    """
    Loads the dashboard: the image list is required, system analytics are
    optional and only fetched for roles allowed to see them.

    idle -> loading on mount(), failed -> loading on retry(). A failed image
    fetch ends in failed; a failed analytics fetch just leaves analytics empty.
    Nothing is retried automatically and in-flight fetches are never
    cancelled: after unmount() their results are dropped and the state
    returns to idle.
    """

    def __init__(
        self,
        images: ImageAPI,
        analytics: AnalyticsAPI,
        store: SessionStore,
        parallel: Optional[bool] = None,
        settings: Optional[Settings] = None,
    ):
        self.images = images
        self.analytics = analytics
        self.store = store
        settings = settings or default_settings
        self.parallel = settings.DASHBOARD_PARALLEL if parallel is None else parallel
        self.state = DashboardViewState()
        self.mounted = False
        self._generation = 0
        self._listeners: list[StateListener] = []

    def subscribe(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    # ----------------------------
    # Transitions
    # ----------------------------
    def mount(self) -> DashboardViewState:
        if self.state.phase is not Phase.idle:
            raise InvalidTransition(f"cannot mount from {self.state.phase.value}")
        self.mounted = True
        self._generation += 1
        return self._load()

    def retry(self) -> DashboardViewState:
        if self.state.phase is not Phase.failed:
            raise InvalidTransition(f"cannot retry from {self.state.phase.value}")
        return self._load()

    def unmount(self) -> None:
        """Drop listeners and go back to idle; mount() may be called again."""
        self.mounted = False
        self._generation += 1
        self._listeners.clear()
        self.state = DashboardViewState()

    def _load(self) -> DashboardViewState:
        generation = self._generation
        self._commit(DashboardViewState(phase=Phase.loading), generation)

        identity = self.store.get().identity
        wants_analytics = identity is not None and identity.role.can_view_analytics

        if self.parallel:
            images, error, analytics = self._fetch_parallel(wants_analytics)
        else:
            images, error = self._fetch_images()
            analytics = self._fetch_analytics() if error is None and wants_analytics else None

        if error is not None:
            self._commit(DashboardViewState(phase=Phase.failed, error=error), generation)
        else:
            self._commit(DashboardViewState(phase=Phase.ready, images=images, analytics=analytics), generation)
        return self.state

    def _commit(self, state: DashboardViewState, generation: int) -> None:
        if not self.mounted or generation != self._generation:
            logger.debug("Dashboard unmounted, dropping %s state", state.phase.value)
            return
        self.state = state
        logger.info("Dashboard %s", state.phase.value)
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Dashboard listener failed")

    # ----------------------------
    # Fetches
    # ----------------------------
    def _fetch_images(self) -> tuple[list[ImageRecord], Optional[ErrorInfo]]:
        try:
            payload = self.images.get_all() or {}
            if not isinstance(payload, dict):
                raise InvalidResponse("image list is not a JSON object")
            records = [ImageRecord.model_validate(item) for item in payload.get("images") or []]
        except (APIError, ValidationError) as e:
            logger.error("Dashboard error: %s", e)
            status = e.status_code if isinstance(e, HTTPStatusError) else None
            return [], ErrorInfo(message=LOAD_ERROR_MESSAGE, status_code=status, detail=str(e))
        return records, None

    def _fetch_analytics(self) -> Optional[AnalyticsSnapshot]:
        try:
            return AnalyticsSnapshot.model_validate(self.analytics.get_stats() or {})
        except (APIError, ValidationError) as e:
            logger.info("Analytics not available: %s", e)
            return None

    def _fetch_parallel(self, wants_analytics: bool):
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="dashboard") as pool:
            images_future = pool.submit(self._fetch_images)
            analytics_future = pool.submit(self._fetch_analytics) if wants_analytics else None
            images, error = images_future.result()
            analytics = analytics_future.result() if analytics_future is not None else None
        if error is not None:
            analytics = None
        return images, error, analytics
