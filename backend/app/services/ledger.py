"""Append/retract log of match records."""

from __future__ import annotations

import logging
from contextlib import aclosing
from datetime import datetime
from typing import AsyncIterator, Optional

from ..documents import DoublesMatch, SinglesMatch
from ..stores import MatchStore
from .validation import validate_match_record

logger = logging.getLogger(__name__)

MatchRecordT = SinglesMatch | DoublesMatch


class MatchLedger:
    """Validated access to the match store.

    Records are immutable once written; the only other mutation is deletion.
    Reverting the profile statistics a deleted match contributed is the
    caller's job (see ``services.submission``).
    """

    def __init__(self, store: MatchStore) -> None:
        self.store = store

    async def record_match(self, match: MatchRecordT) -> str:
        """Validate and stage ``match``; return its id.

        Raises:
            ValidationError: On a tied score, a repeated or missing participant,
                a negative score or a winner that contradicts the scores.
        """
        validate_match_record(match)
        await self.store.create(match)
        logger.debug("Staged %s match %s", match.match_type, match.id)
        return match.id

    async def get_match(self, match_id: str) -> MatchRecordT:
        return await self.store.get(match_id)

    async def delete_match(self, match_id: str) -> MatchRecordT:
        """Remove a match and return the record that was removed.

        Raises:
            MatchNotFound: If no match with ``match_id`` exists.
        """
        match = await self.store.get(match_id)
        await self.store.delete(match_id)
        return match

    def list_matches(self, *, descending: bool = True) -> AsyncIterator[MatchRecordT]:
        return self.store.query_all(descending=descending)

    async def references_player(self, player_id: str) -> bool:
        async with aclosing(self.list_matches()) as matches:
            async for match in matches:
                if player_id in match.participant_ids:
                    return True
        return False

    async def last_played_together(
        self, player_a: str, player_b: str, *, exclude: Optional[str] = None
    ) -> Optional[datetime]:
        """``played_at`` of the latest doubles match with both on one team."""
        pair = {player_a, player_b}
        async with aclosing(self.list_matches()) as matches:
            async for match in matches:
                if match.id == exclude or not isinstance(match, DoublesMatch):
                    continue
                if pair == set(match.team1) or pair == set(match.team2):
                    return match.played_at
        return None
