import logging
import time
from typing import Any, Callable, Optional

import requests

from .auth import BearerAuth, InvalidationListener, UnauthorizedHandler
from .config import Settings, settings as default_settings
from .errors import NetworkFailure, error_for_response
from .session import SessionStore

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"

OutgoingStage = Callable[[requests.PreparedRequest], requests.PreparedRequest]
IncomingStage = Callable[[requests.Response], requests.Response]


class RequestPipeline:
    """
    Every API call goes through here.

    outgoing stages run in order on the prepared request, incoming stages
    run in order on the response (error statuses included). Non-2xx
    responses are raised after the incoming stages have seen them.
    Network failures and timeouts are raised as NetworkFailure, without retry.
    """

    def __init__(
        self,
        store: SessionStore,
        settings: Optional[Settings] = None,
        http: Optional[requests.Session] = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        self.http = http or requests.Session()
        self.http.headers.update({"Accept": JSON_CONTENT_TYPE})

        self.credentials = BearerAuth(store)
        self.unauthorized = UnauthorizedHandler(store)
        self.outgoing: list[OutgoingStage] = [self.credentials]
        self.incoming: list[IncomingStage] = [self.unauthorized]

    def on_invalidated(self, listener: InvalidationListener) -> None:
        self.unauthorized.subscribe(listener)

    def url_for(self, path: str, versioned: bool = True) -> str:
        if path.startswith(("http://", "https://")):
            return path
        base = (self.settings.API_BASE_URL if versioned else self.settings.HEALTH_URL).rstrip("/")
        if not path:
            return base
        return f"{base}/{path.lstrip('/')}"

    def send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        data: Optional[dict] = None,
        files: Optional[dict] = None,
        params: Optional[dict] = None,
        versioned: bool = True,
        intercept: bool = True,
    ) -> requests.Response:
        method = method.upper()
        url = self.url_for(path, versioned)

        # multipart bodies get their Content-Type (with boundary) from requests
        headers = {} if files else {"Content-Type": JSON_CONTENT_TYPE}
        request = requests.Request(method, url, headers=headers, json=json, data=data, files=files, params=params)
        prepared = self.http.prepare_request(request)

        if intercept:
            for stage in self.outgoing:
                prepared = stage(prepared)

        env = self.http.merge_environment_settings(prepared.url, {}, None, None, None)
        started = time.monotonic()
        try:
            response = self.http.send(prepared, timeout=self.settings.REQUEST_TIMEOUT, **env)
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise NetworkFailure(f"{type(e).__name__}: {e}") from e

        logger.debug("%s %s -> %s (%.2fs)", method, url, response.status_code, time.monotonic() - started)

        if intercept:
            for stage in self.incoming:
                response = stage(response)

        if not response.ok:
            raise error_for_response(response)
        return response

    def close(self) -> None:
        self.http.close()
