"""Static tool registry and the confirmation policy derived from it.

Tiers: 0 read-only, 1 read with external cost, 2 mutating, 3 unknown.
Anything not registered is tier 3 and therefore always needs confirmation.
"""

from __future__ import annotations

TOOL_REGISTRY: dict[str, int] = {
    "weather_forecast": 0,
    "calendar_read": 1,
    "email_read": 1,
    "calendar_write_create": 2,
}

UNKNOWN_TOOL_TIER = 3


def tool_tier(tool: str) -> int:
    return TOOL_REGISTRY.get(tool, UNKNOWN_TOOL_TIER)


def requires_confirmation(tool: str) -> bool:
    return tool_tier(tool) >= 2
