"""Shared HTTP GET helper for the load boundaries."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class SourceLoadError(Exception):
    """Base class for load failures at an external boundary."""

    def __init__(self, message: str, deal_id: str | None = None) -> None:
        self.deal_id = deal_id
        super().__init__(message)


def fetch_json(
    *,
    client: httpx.Client | None,
    url: str,
    params: Mapping[str, str],
    timeout_seconds: float,
    error_cls: type[SourceLoadError],
    deal_id: str,
) -> Any:
    """GET a JSON document, raising error_cls on any transport or HTTP failure.

    Args:
        client: Injected client (tests); a short-lived client is used when None.
        url: Request URL.
        params: Query parameters.
        timeout_seconds: Request timeout.
        error_cls: SourceLoadError subclass to raise.
        deal_id: Deal being loaded, attached to the error.

    Returns:
        Parsed JSON body.
    """
    headers = {"Accept": "application/json"}
    should_close = client is None
    http = client or httpx.Client(timeout=timeout_seconds, headers=headers)
    try:
        response = http.get(url, params=dict(params), headers=headers, timeout=timeout_seconds)
        response.raise_for_status()
        return response.json()
    except httpx.TimeoutException as e:
        raise error_cls(f"Timed out after {timeout_seconds}s loading {url}", deal_id) from e
    except httpx.HTTPStatusError as e:
        raise error_cls(
            f"HTTP {e.response.status_code} loading {url}", deal_id
        ) from e
    except httpx.RequestError as e:
        raise error_cls(f"Request to {url} failed: {e}", deal_id) from e
    except ValueError as e:
        raise error_cls(f"Invalid JSON from {url}: {e}", deal_id) from e
    finally:
        if should_close:
            http.close()


def unwrap_list(body: Any, key: str) -> list[Any]:
    """Accept either a bare JSON array or an object holding it under key."""
    if isinstance(body, list):
        return body
    if isinstance(body, Mapping) and isinstance(body.get(key), list):
        return list(body[key])
    return []
