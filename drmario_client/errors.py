from typing import Optional

import requests


class APIError(Exception):
    """Base class for everything the API client raises."""


class NetworkFailure(APIError):
    """Connection errors and timeouts; no response was received."""


class HTTPStatusError(APIError):
    def __init__(self, message: str, status_code: int, response: Optional[requests.Response] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response

    def __str__(self) -> str:
        return f"HTTP {self.status_code}: {self.message}"


class Unauthorized(HTTPStatusError):
    pass


class ClientError(HTTPStatusError):
    pass


class ServerError(HTTPStatusError):
    pass


class InvalidResponse(APIError):
    """A 2xx response whose body is not the JSON the caller expected."""

    def __init__(self, message: str, response: Optional[requests.Response] = None):
        super().__init__(message)
        self.response = response


class InvalidTransition(Exception):
    pass


def _error_message(response: requests.Response) -> str:
    # backend replies {"error": "..."}; FastAPI style services use {"detail": "..."}
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        msg = data.get("error") or data.get("detail")
        if msg:
            return str(msg)
    return response.reason or f"HTTP {response.status_code}"


def error_for_response(response: requests.Response) -> HTTPStatusError:
    status = response.status_code
    message = _error_message(response)
    if status == 401:
        return Unauthorized(message, status, response)
    if status >= 500:
        return ServerError(message, status, response)
    return ClientError(message, status, response)
