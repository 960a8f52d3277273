"""Mode selection, authoritative computation and replay."""

from spreadengine.authority.engine import (
    AuthoritativeResult,
    EngineAuthority,
    LegacyComparison,
    ServeResult,
)
from spreadengine.authority.mode import (
    EngineMode,
    ModeConfig,
    ModeConfigError,
    ModeContext,
    ModeReason,
    ModeSelection,
    select_mode,
)
from spreadengine.authority.replay import ReplayCode, ReplayResult, replay_snapshot

__all__ = [
    "AuthoritativeResult",
    "EngineAuthority",
    "EngineMode",
    "LegacyComparison",
    "ModeConfig",
    "ModeConfigError",
    "ModeContext",
    "ModeReason",
    "ModeSelection",
    "ReplayCode",
    "ReplayResult",
    "ServeResult",
    "replay_snapshot",
    "select_mode",
]
