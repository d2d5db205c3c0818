"""
Meta build aggregation.

Recomputes the meta_builds table from the stored kill events. Each
event contributes up to two observations: the killer's equipment (a
kill for that build) and the victim's equipment (a death). Equipment is
reduced to a five-slot fingerprint ``weapon|head|armor|shoes|cape`` with
tier prefixes (``T6_``) and enchantment suffixes (``@3``) stripped, so
all tiers and enchantments of the same loadout count together.

Popularity is a build's share of all fingerprinted observations in the
run, so popularities across the table sum to at most 1.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from ..core.config import Settings
from ..core.models import MetaBuild
from ..core.types import SyncKind
from ..seeders.base import BaseSeeder
from ..seeders.common import AggregationResult
from .build_rules import BUILD_RULES, BuildRules

if TYPE_CHECKING:
    from ..repositories import RepositorySet

logger = logging.getLogger(__name__)

NONE_SLOT = "NONE"
FINGERPRINT_SLOTS = ("MainHand", "Head", "Armor", "Shoes", "Cape")

_TIER_PREFIX = re.compile(r"^T\d+_")
_ENCHANT_SUFFIX = re.compile(r"@\d+$")


@dataclass
class BuildAccumulator:
    """Running totals for one fingerprint."""

    slots: tuple[str, ...]
    kills: int = 0
    deaths: int = 0
    total_fame: int = 0
    healer_appearances: int = 0

    @property
    def sample_size(self) -> int:
        return self.kills + self.deaths


@dataclass
class BuildTally:
    """Accumulators keyed by fingerprint plus the observation count."""

    builds: dict[str, BuildAccumulator] = field(default_factory=dict)
    observations: int = 0


class BuildAggregator(BaseSeeder[AggregationResult]):
    """Full-table meta build recomputation."""

    kind = SyncKind.BUILDS

    def __init__(
        self,
        repos: "RepositorySet",
        settings: Optional[Settings] = None,
        rules: BuildRules = BUILD_RULES,
    ):
        super().__init__(repos, settings)
        self.rules = rules

    # =========================================================================
    # Fingerprints
    # =========================================================================

    @staticmethod
    def normalize_item_type(item_type: Optional[str]) -> str:
        """Strip tier prefix and enchantment suffix; missing items are NONE.

        Args:
            item_type: Raw item id such as ``T6_MAIN_SWORD@3``

        Returns:
            Normalized id such as ``MAIN_SWORD``
        """
        if not item_type:
            return NONE_SLOT
        return _ENCHANT_SUFFIX.sub("", _TIER_PREFIX.sub("", item_type))

    @staticmethod
    def fingerprint(equipment: Optional[dict[str, Any]]) -> Optional[tuple[str, ...]]:
        """
        Reduce an equipment snapshot to its five normalized slots.

        Returns None when both weapon and armor are missing; such
        loadouts carry no build signal.
        """
        equipment = equipment or {}
        slots = tuple(
            BuildAggregator.normalize_item_type((equipment.get(slot) or {}).get("Type"))
            for slot in FINGERPRINT_SLOTS
        )
        weapon, _, armor, _, _ = slots
        if weapon == NONE_SLOT and armor == NONE_SLOT:
            return None
        return slots

    # =========================================================================
    # Aggregation
    # =========================================================================

    def tally(self, events: list[dict[str, Any]]) -> BuildTally:
        """Accumulate killer and victim observations for a list of event rows."""
        tally = BuildTally()

        for event in events:
            fame = event.get("total_fame") or 0
            for side, is_kill in (("killer_equipment", True), ("victim_equipment", False)):
                slots = self.fingerprint(event.get(side))
                if slots is None:
                    continue

                key = "|".join(slots)
                acc = tally.builds.get(key)
                if acc is None:
                    acc = tally.builds[key] = BuildAccumulator(slots=slots)

                if is_kill:
                    acc.kills += 1
                    acc.total_fame += fame
                else:
                    acc.deaths += 1
                if self.rules.is_healer(slots[0]):
                    acc.healer_appearances += 1
                tally.observations += 1

        return tally

    def build_rows(self, tally: BuildTally) -> list[MetaBuild]:
        """Apply the sample floor and compute the derived ratios."""
        rows = []
        for key, acc in tally.builds.items():
            total = acc.sample_size
            if total < self.rules.min_sample_size:
                continue
            weapon, head, armor, shoes, cape = (
                None if slot == NONE_SLOT else slot for slot in acc.slots
            )
            rows.append(MetaBuild(
                build_id=key,
                weapon_type=weapon,
                head_type=head,
                armor_type=armor,
                shoes_type=shoes,
                cape_type=cape,
                kills=acc.kills,
                deaths=acc.deaths,
                win_rate=acc.kills / total,
                popularity=total / tally.observations,
                avg_fame=acc.total_fame / acc.kills if acc.kills else 0.0,
                sample_size=total,
                is_healer=acc.healer_appearances > 0,
                rules_version=self.rules.version,
            ))
        rows.sort(key=lambda row: (-row.sample_size, row.build_id))
        return rows

    def load_events(self) -> list[dict[str, Any]]:
        """Load stored kill events newest first, up to the configured cap."""
        cap = self.settings.build_event_cap
        page_size = self.settings.build_page_size
        events: list[dict[str, Any]] = []

        while len(events) < cap:
            want = min(page_size, cap - len(events))
            page = self.repos.kill_events.fetch_recent(want, offset=len(events))
            events.extend(page)
            if len(page) < want:
                break

        return events

    def replace_builds(self, rows: list[MetaBuild], result: AggregationResult) -> None:
        """Delete every meta build and insert ``rows`` in sequential batches."""
        removed = self.repos.meta_builds.delete_all()
        logger.info("Cleared %d meta builds", removed)

        batch_size = self.settings.build_insert_batch_size
        for start in range(0, len(rows), batch_size):
            batch = rows[start:start + batch_size]
            try:
                result.builds_written += self.repos.meta_builds.insert_batch(batch)
            except Exception as e:
                result.failed_batches += 1
                logger.error("Meta build batch %d failed: %s", start // batch_size + 1, e)

    async def _execute(self, **_: Any) -> AggregationResult:
        result = AggregationResult()

        events = self.load_events()
        result.events_processed = len(events)
        if not events:
            logger.warning("No kill events stored, leaving meta builds untouched")
            return result

        tally = self.tally(events)
        rows = self.build_rows(tally)
        result.builds_found = len(tally.builds)
        logger.info(
            "Found %d unique builds in %d events, %d meet the sample floor of %d",
            len(tally.builds), len(events), len(rows), self.rules.min_sample_size,
        )

        self.replace_builds(rows, result)
        logger.info(
            "Meta builds written: %d (%d failed batches, rules %s)",
            result.builds_written, result.failed_batches, self.rules.version,
        )
        return result

    def _counters(self, result: AggregationResult) -> dict[str, int]:
        return result.to_dict()
