"""Legacy rendering load boundary (read-only; used for parity only)."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from spreadengine.parity.legacy_spread import RenderedSpread
from spreadengine.sources.facts import DEFAULT_TIMEOUT_SECONDS
from spreadengine.sources.http import SourceLoadError, fetch_json, unwrap_list

logger = logging.getLogger(__name__)


class LegacyLoadError(SourceLoadError):
    """Raised when legacy spreads for a deal cannot be loaded."""

    pass


@runtime_checkable
class LegacySpreadSource(Protocol):
    """Protocol for legacy rendering providers."""

    def load_spreads(
        self, deal_id: str, bank_id: str, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    ) -> list[RenderedSpread]:
        """Load all legacy rendered spreads for a deal.

        Raises:
            LegacyLoadError: If the load fails, times out, or a document is malformed.
        """
        ...


def parse_spreads(documents: Iterable[Any], deal_id: str) -> list[RenderedSpread]:
    """Validate raw spread documents.

    Raises:
        LegacyLoadError: If a document does not validate as a RenderedSpread.
    """
    spreads: list[RenderedSpread] = []
    for doc in documents:
        if isinstance(doc, RenderedSpread):
            spreads.append(doc)
            continue
        try:
            spreads.append(RenderedSpread.model_validate(doc))
        except ValidationError as e:
            raise LegacyLoadError(f"Malformed legacy spread: {e}", deal_id) from e
    return spreads


class HttpLegacySpreadSource:
    """Loads spreads from GET {base_url}/deals/{deal_id}/spreads?bank_id=..."""

    def __init__(self, base_url: str, http_client: httpx.Client | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client

    def load_spreads(
        self, deal_id: str, bank_id: str, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    ) -> list[RenderedSpread]:
        body = fetch_json(
            client=self._http_client,
            url=f"{self._base_url}/deals/{deal_id}/spreads",
            params={"bank_id": bank_id},
            timeout_seconds=timeout_seconds,
            error_cls=LegacyLoadError,
            deal_id=deal_id,
        )
        spreads = parse_spreads(unwrap_list(body, "spreads"), deal_id)
        logger.info("Loaded %d legacy spreads for deal %s", len(spreads), deal_id)
        return spreads


class InMemoryLegacySpreadSource:
    """Legacy source over a dict keyed by (deal_id, bank_id)."""

    def __init__(
        self, spreads: Mapping[tuple[str, str], Iterable[Any]] | None = None
    ) -> None:
        self._spreads: dict[tuple[str, str], list[Any]] = {
            key: list(docs) for key, docs in (spreads or {}).items()
        }
        self._lock = threading.Lock()

    def put(self, deal_id: str, bank_id: str, documents: Iterable[Any]) -> None:
        """Replace the spreads for a deal."""
        with self._lock:
            self._spreads[(deal_id, bank_id)] = list(documents)

    def load_spreads(
        self, deal_id: str, bank_id: str, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    ) -> list[RenderedSpread]:
        with self._lock:
            documents = list(self._spreads.get((deal_id, bank_id), []))
        return parse_spreads(documents, deal_id)
