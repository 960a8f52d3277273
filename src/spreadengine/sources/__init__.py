"""External load boundaries for facts and legacy renderings."""

from spreadengine.sources.facts import (
    DEFAULT_TIMEOUT_SECONDS,
    FactLoadError,
    FactSource,
    HttpFactSource,
    InMemoryFactSource,
    parse_facts,
)
from spreadengine.sources.http import SourceLoadError
from spreadengine.sources.legacy import (
    HttpLegacySpreadSource,
    InMemoryLegacySpreadSource,
    LegacyLoadError,
    LegacySpreadSource,
    parse_spreads,
)

__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "FactLoadError",
    "FactSource",
    "HttpFactSource",
    "HttpLegacySpreadSource",
    "InMemoryFactSource",
    "InMemoryLegacySpreadSource",
    "LegacyLoadError",
    "LegacySpreadSource",
    "SourceLoadError",
    "parse_facts",
    "parse_spreads",
]
