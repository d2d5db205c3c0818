"""
Versioned rules for meta build aggregation.

Every meta_builds row records the ``version`` of the rules it was
computed with. Change the version whenever the healer list or the
sample floor changes.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BuildRules:
    """Healer identification and minimum sample policy."""

    version: str
    min_sample_size: int
    healer_weapons: tuple[str, ...]

    def is_healer(self, weapon: str | None) -> bool:
        """Case-insensitive substring match against the healer staff list."""
        if not weapon or weapon == "NONE":
            return False
        upper = weapon.upper()
        return any(healer in upper for healer in self.healer_weapons)


BUILD_RULES = BuildRules(
    version="2025.1",
    min_sample_size=3,
    healer_weapons=(
        "HOLYSTAFF",
        "DIVINESTAFF",
        "SMITESTAFF",
        "FALLENSTAFF",
        "LIFETOUCHSTAFF",
        "REDEMPTIONSTAFF",
        "GREATHOLYSTAFF",
        "NATURESTAFF",
        "DRUIDSTAFF",
        "WILDSTAFF",
        "REJUVENATIONSTAFF",
        "IRONROOTSTAFF",
        "FRAIVESTAFF",
    ),
)
