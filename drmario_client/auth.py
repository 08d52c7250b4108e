import logging
from typing import Callable

import requests
from requests.auth import AuthBase

from .session import SessionStore

logger = logging.getLogger(__name__)

InvalidationListener = Callable[[requests.Response], None]


# =========================
# Outgoing: credentials
# =========================

class BearerAuth(AuthBase):
    """
    Pre-send stage. Reads the session at send time and attaches
    Authorization: Bearer <token> when a token is held.
    Without a token the request goes out unauthenticated.
    """

    def __init__(self, store: SessionStore):
        self.store = store

    def __call__(self, request: requests.PreparedRequest) -> requests.PreparedRequest:
        token = self.store.get().token
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        else:
            request.headers.pop("Authorization", None)
        return request


# =========================
# Incoming: session invalidation
# =========================

class UnauthorizedHandler:
    """
    Post-receive stage. A 401 clears the session and notifies every
    listener, once per 401 response. The response itself is returned
    untouched so the caller still gets the error.
    """

    def __init__(self, store: SessionStore):
        self.store = store
        self.listeners: list[InvalidationListener] = []

    def subscribe(self, listener: InvalidationListener) -> None:
        self.listeners.append(listener)

    def __call__(self, response: requests.Response) -> requests.Response:
        if response.status_code != 401:
            return response

        logger.warning("Session invalidated by %s %s", response.request.method if response.request else "?", response.url)
        self.store.clear()
        for listener in list(self.listeners):
            try:
                listener(response)
            except Exception:
                logger.exception("Session invalidation listener failed")
        return response
