"""Fact load boundary.

Facts are a point-in-time snapshot per (deal, bank). Heartbeat rows written
by the extraction pipeline carry no financial data and are dropped here.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from spreadengine.models.facts import Fact, FactType
from spreadengine.sources.http import SourceLoadError, fetch_json, unwrap_list

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class FactLoadError(SourceLoadError):
    """Raised when facts for a deal cannot be loaded."""

    pass


@runtime_checkable
class FactSource(Protocol):
    """Protocol for fact providers."""

    def load_facts(
        self, deal_id: str, bank_id: str, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    ) -> list[Fact]:
        """Load all facts for a deal.

        Raises:
            FactLoadError: If the load fails or times out.
        """
        ...


def parse_facts(rows: Iterable[Mapping[str, Any]]) -> list[Fact]:
    """Parse raw fact rows, dropping heartbeats and rows that do not validate."""
    facts: list[Fact] = []
    for row in rows:
        if row.get("fact_type") == FactType.EXTRACTION_HEARTBEAT:
            continue
        try:
            facts.append(Fact.model_validate(row))
        except ValidationError as e:
            logger.debug("Dropping unparseable fact row: %s", e)
    return facts


class HttpFactSource:
    """Loads facts from GET {base_url}/deals/{deal_id}/facts?bank_id=..."""

    def __init__(self, base_url: str, http_client: httpx.Client | None = None) -> None:
        """Initialize the source.

        Args:
            base_url: Fact service base URL.
            http_client: Optional httpx.Client for dependency injection (testing).
        """
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client

    def load_facts(
        self, deal_id: str, bank_id: str, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    ) -> list[Fact]:
        body = fetch_json(
            client=self._http_client,
            url=f"{self._base_url}/deals/{deal_id}/facts",
            params={"bank_id": bank_id},
            timeout_seconds=timeout_seconds,
            error_cls=FactLoadError,
            deal_id=deal_id,
        )
        facts = parse_facts(unwrap_list(body, "facts"))
        logger.info("Loaded %d facts for deal %s", len(facts), deal_id)
        return facts


class InMemoryFactSource:
    """Fact source over a dict keyed by (deal_id, bank_id)."""

    def __init__(self, facts: Mapping[tuple[str, str], Iterable[Any]] | None = None) -> None:
        self._facts: dict[tuple[str, str], list[Any]] = {
            key: list(rows) for key, rows in (facts or {}).items()
        }
        self._lock = threading.Lock()

    def put(self, deal_id: str, bank_id: str, rows: Iterable[Any]) -> None:
        """Replace the facts for a deal."""
        with self._lock:
            self._facts[(deal_id, bank_id)] = list(rows)

    def load_facts(
        self, deal_id: str, bank_id: str, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    ) -> list[Fact]:
        with self._lock:
            rows = list(self._facts.get((deal_id, bank_id), []))
        return parse_facts(r.model_dump() if isinstance(r, Fact) else r for r in rows)
