"""Engine mode selection.

select_mode() is a pure function of a ModeConfig value and the request
context. Configuration is read from the environment once, by
ModeConfig.from_env(), and then threaded explicitly into every call.

Resolution order for privileged contexts:
    1. global override (SPREADENGINE_PRIMARY_OVERRIDE)
    2. explicit mode (SPREADENGINE_MODE)
    3. deal allowlist (SPREADENGINE_DEAL_ALLOWLIST)
    4. bank allowlist (SPREADENGINE_BANK_ALLOWLIST)
    5. default primary

Non-privileged or missing contexts are always served primary.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum

PRIMARY_OVERRIDE_ENV = "SPREADENGINE_PRIMARY_OVERRIDE"
MODE_ENV = "SPREADENGINE_MODE"
DEAL_ALLOWLIST_ENV = "SPREADENGINE_DEAL_ALLOWLIST"
BANK_ALLOWLIST_ENV = "SPREADENGINE_BANK_ALLOWLIST"
ALLOWLIST_MODE_ENV = "SPREADENGINE_ALLOWLIST_MODE"
SHADOW_COMPARE_ENV = "SPREADENGINE_SHADOW_COMPARE"


class EngineMode(StrEnum):
    """Which computation path is authoritative."""

    LEGACY = "legacy"
    SHADOW = "shadow"
    PRIMARY = "primary"


class ModeReason(StrEnum):
    """Which resolution rule fired."""

    ENFORCED = "enforced"
    GLOBAL_OVERRIDE = "global_override"
    EXPLICIT_MODE = "explicit_mode"
    DEAL_ALLOWLIST = "deal_allowlist"
    BANK_ALLOWLIST = "bank_allowlist"
    DEFAULT = "default"


class ModeConfigError(ValueError):
    """Raised when a mode environment variable holds an unknown value."""

    def __init__(self, variable: str, value: str) -> None:
        self.variable = variable
        self.value = value
        allowed = ", ".join(m.value for m in EngineMode)
        super().__init__(f"{variable}={value!r} is not a valid mode (expected one of: {allowed})")


def _parse_mode(environ: Mapping[str, str], variable: str) -> EngineMode | None:
    raw = environ.get(variable, "").strip().lower()
    if not raw:
        return None
    try:
        return EngineMode(raw)
    except ValueError as e:
        raise ModeConfigError(variable, raw) from e


def _parse_list(environ: Mapping[str, str], variable: str) -> frozenset[str]:
    raw = environ.get(variable, "")
    return frozenset(item.strip() for item in raw.split(",") if item.strip())


def _parse_bool(environ: Mapping[str, str], variable: str) -> bool:
    return environ.get(variable, "").strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class ModeConfig:
    """Mode selection configuration.

    Attributes:
        primary_override: Global override; wins over every other rule.
        mode: Explicit mode for privileged contexts.
        deal_allowlist: Deal ids served allowlist_mode.
        bank_allowlist: Bank ids served allowlist_mode.
        allowlist_mode: Mode for allowlisted deals and banks.
        shadow_compare: Whether legacy comparison runs at all.
    """

    primary_override: EngineMode | None = None
    mode: EngineMode | None = None
    deal_allowlist: frozenset[str] = field(default_factory=frozenset)
    bank_allowlist: frozenset[str] = field(default_factory=frozenset)
    allowlist_mode: EngineMode = EngineMode.SHADOW
    shadow_compare: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ModeConfig:
        """Build a config from SPREADENGINE_* variables.

        Raises:
            ModeConfigError: If a mode variable holds an unknown value.
        """
        env = os.environ if environ is None else environ
        return cls(
            primary_override=_parse_mode(env, PRIMARY_OVERRIDE_ENV),
            mode=_parse_mode(env, MODE_ENV),
            deal_allowlist=_parse_list(env, DEAL_ALLOWLIST_ENV),
            bank_allowlist=_parse_list(env, BANK_ALLOWLIST_ENV),
            allowlist_mode=_parse_mode(env, ALLOWLIST_MODE_ENV) or EngineMode.SHADOW,
            shadow_compare=_parse_bool(env, SHADOW_COMPARE_ENV),
        )


@dataclass(frozen=True)
class ModeContext:
    """Who is asking, and about what."""

    privileged: bool = False
    deal_id: str | None = None
    bank_id: str | None = None


@dataclass(frozen=True)
class ModeSelection:
    """Selected mode plus the rule that selected it."""

    mode: EngineMode
    reason: ModeReason
    detail: str

    def to_dict(self) -> dict[str, str]:
        return {"mode": self.mode.value, "reason": self.reason.value, "detail": self.detail}


def select_mode(config: ModeConfig, context: ModeContext | None = None) -> ModeSelection:
    """Select the authoritative engine mode for a context.

    Args:
        config: Mode configuration.
        context: Request context; treated as non-privileged when None.

    Returns:
        ModeSelection whose reason names the rule that fired.
    """
    if context is None or not context.privileged:
        return ModeSelection(
            EngineMode.PRIMARY,
            ModeReason.ENFORCED,
            "non-privileged context is always served primary",
        )

    if config.primary_override is not None:
        return ModeSelection(
            config.primary_override,
            ModeReason.GLOBAL_OVERRIDE,
            f"{PRIMARY_OVERRIDE_ENV}={config.primary_override.value}",
        )

    if config.mode is not None:
        return ModeSelection(
            config.mode, ModeReason.EXPLICIT_MODE, f"{MODE_ENV}={config.mode.value}"
        )

    if context.deal_id is not None and context.deal_id in config.deal_allowlist:
        return ModeSelection(
            config.allowlist_mode,
            ModeReason.DEAL_ALLOWLIST,
            f"deal {context.deal_id} is allowlisted",
        )

    if context.bank_id is not None and context.bank_id in config.bank_allowlist:
        return ModeSelection(
            config.allowlist_mode,
            ModeReason.BANK_ALLOWLIST,
            f"bank {context.bank_id} is allowlisted",
        )

    return ModeSelection(EngineMode.PRIMARY, ModeReason.DEFAULT, "no rule matched")
