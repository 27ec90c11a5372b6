"""Shared HTTP plumbing for the external lookup services."""

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class ExternalServiceError(RuntimeError):
    """An external lookup failed (timeout, HTTP error, rate limit, bad payload).

    Lookups are never retried; whatever was persisted before the failure is
    kept so the stage can be resumed.
    """

    def __init__(self, service: str, message: str, index: Optional[int] = None):
        self.service = service
        self.index = index
        where = f" (row {index})" if index is not None else ""
        super().__init__(f"{service} lookup failed{where}: {message}")


def get_json(session: requests.Session, service: str, url: str, params: Dict[str, Any],
             timeout: float, index: Optional[int] = None) -> Dict[str, Any]:
    """GET *url* and decode JSON, converting every failure into ExternalServiceError."""
    try:
        response = session.get(url, params=params, timeout=timeout)
    except requests.Timeout as exc:
        raise ExternalServiceError(service, f"timed out after {timeout}s", index) from exc
    except requests.RequestException as exc:
        raise ExternalServiceError(service, str(exc), index) from exc

    if response.status_code == 429:
        raise ExternalServiceError(service, "rate limited (HTTP 429)", index)
    try:
        response.raise_for_status()
    except requests.HTTPError as exc:
        raise ExternalServiceError(service, f"HTTP {response.status_code}", index) from exc

    try:
        payload = response.json()
    except ValueError as exc:
        raise ExternalServiceError(service, "response is not valid JSON", index) from exc
    if not isinstance(payload, dict):
        raise ExternalServiceError(service, f"unexpected payload type {type(payload).__name__}", index)
    return payload
