"""Commission rate resolution.

A single :class:`CommissionSettings` value carries the default percentage and
any per-rep overrides. It is passed explicitly into the balance calculator;
loading and saving it is the caller's job (see
:func:`consignflow.data_manager.load_commission_settings`).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional

from . import log
from .constants import DEFAULT_COMMISSION_PERCENT


@dataclass(frozen=True)
class CommissionSettings:
    """Default commission percentage plus per-rep overrides."""

    default_commission_percent: float = DEFAULT_COMMISSION_PERCENT
    overrides_by_rep_id: Mapping[int, float] = field(default_factory=dict)


def resolve_commission(rep_id: int, settings: Optional[CommissionSettings] = None) -> float:
    """Return the effective commission percentage for ``rep_id``.

    An override set for the rep always wins over the default. Missing
    settings behave like the defaults (30%, no overrides). The value is
    returned as stored; range validation belongs to whoever set it.
    """

    if settings is None:
        settings = CommissionSettings()
    override = settings.overrides_by_rep_id.get(rep_id)
    if override is not None:
        return override
    return settings.default_commission_percent


def set_default_commission(settings: CommissionSettings, percent: float) -> CommissionSettings:
    """Return a copy of ``settings`` with a new default percentage."""

    log.debug(
        "Default commission changed from %s to %s",
        settings.default_commission_percent,
        percent,
    )
    return replace(settings, default_commission_percent=percent)


def set_rep_override(
    settings: CommissionSettings,
    rep_id: int,
    percent: Optional[float],
) -> CommissionSettings:
    """Return a copy of ``settings`` with the override for ``rep_id`` updated.

    Passing ``None`` removes the override so the rep reverts to the default.
    """

    overrides: Dict[int, float] = dict(settings.overrides_by_rep_id)
    if percent is None:
        overrides.pop(rep_id, None)
        log.debug("Removed commission override for rep %s", rep_id)
    else:
        overrides[rep_id] = percent
        log.debug("Set commission override for rep %s to %s", rep_id, percent)
    return replace(settings, overrides_by_rep_id=overrides)


def settings_to_document(settings: CommissionSettings) -> Dict[str, Any]:
    """Serialize settings into the persisted ``{defaultCommissionPercent, overridesByRepId}`` shape."""

    return {
        "defaultCommissionPercent": settings.default_commission_percent,
        "overridesByRepId": {
            str(rep_id): percent
            for rep_id, percent in sorted(settings.overrides_by_rep_id.items())
        },
    }


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def settings_from_document(document: Mapping[str, Any]) -> CommissionSettings:
    """Build settings from a persisted document.

    Absent fields fall back to the defaults. Override entries whose key is
    not an integer id or whose value is not numeric are skipped with a
    warning, and a ``None`` value counts as "no override".

    Raises:
        ValueError: If ``defaultCommissionPercent`` is present but not a
            finite number, or ``overridesByRepId`` is not an object.
    """

    raw_default = document.get("defaultCommissionPercent", DEFAULT_COMMISSION_PERCENT)
    if not _is_finite_number(raw_default):
        raise ValueError(f"Invalid default commission percentage: {raw_default!r}")

    raw_overrides = document.get("overridesByRepId") or {}
    if not isinstance(raw_overrides, Mapping):
        raise ValueError(f"Invalid commission overrides: {raw_overrides!r}")

    overrides: Dict[int, float] = {}
    for raw_key, raw_value in raw_overrides.items():
        if raw_value is None:
            continue
        try:
            rep_id = int(raw_key)
        except (TypeError, ValueError):
            log.warning("Ignoring commission override with invalid rep id %r", raw_key)
            continue
        if not _is_finite_number(raw_value):
            log.warning("Ignoring non-numeric commission override for rep %s: %r", rep_id, raw_value)
            continue
        overrides[rep_id] = raw_value

    return CommissionSettings(
        default_commission_percent=raw_default,
        overrides_by_rep_id=overrides,
    )
