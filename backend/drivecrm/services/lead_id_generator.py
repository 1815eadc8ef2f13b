"""Short numeric lead identifiers.

Candidates are checked against existing leads before use, but the unique
index on ``leads.leadId`` is the final authority: writers catch
``DuplicateKeyError`` and ask for a new id.
"""
import logging
import random
import time
from typing import Callable, Optional

from drivecrm.models.lead import LEAD_ID_MAX, LEAD_ID_MIN

logger = logging.getLogger(__name__)

LEADS_COLLECTION = "leads"

MAX_RANDOM_ATTEMPTS = 200
MAX_FALLBACK_ATTEMPTS = 50
# Time-derived fallback candidates land in [10000, 909999]
FALLBACK_MODULUS = 900000


class LeadIdGenerator:
    """Generates ``leadId`` values in [10000, 999999]."""

    def __init__(
        self,
        db,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.rng = rng or random.SystemRandom()
        self.clock = clock

    def _random_candidate(self) -> int:
        return self.rng.randint(LEAD_ID_MIN, LEAD_ID_MAX)

    async def exists(self, candidate: int) -> bool:
        found = await self.db[LEADS_COLLECTION].find_one({"leadId": candidate}, {"_id": 1})
        return found is not None

    async def next_lead_id(self) -> int:
        for _ in range(MAX_RANDOM_ATTEMPTS):
            candidate = self._random_candidate()
            if not await self.exists(candidate):
                return candidate

        logger.warning(
            f"No free leadId after {MAX_RANDOM_ATTEMPTS} random draws, using time-based fallback"
        )
        span = LEAD_ID_MAX - LEAD_ID_MIN + 1
        candidate = int(self.clock() * 1000) % FALLBACK_MODULUS + LEAD_ID_MIN
        for _ in range(MAX_FALLBACK_ATTEMPTS):
            if not await self.exists(candidate):
                return candidate
            offset = self.rng.randint(1, span - 1)
            candidate = LEAD_ID_MIN + (candidate - LEAD_ID_MIN + offset) % span

        candidate = self._random_candidate()
        logger.warning(f"leadId fallback exhausted, accepting unchecked candidate {candidate}")
        return candidate
