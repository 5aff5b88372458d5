"""Orchestration of match submission, match deletion and player lifecycle.

Each public coroutine runs as one database transaction on the given session.
Profile rows carry a version counter, so a concurrent writer that touched the
same profiles makes the commit fail with ``StaleDataError``; the whole
read-compute-write cycle is then rolled back and repeated.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..config import profile_write_retries
from ..db_errors import is_unique_violation
from ..documents import DoublesMatch, PlayerProfile, SinglesMatch, new_profile
from ..exceptions import ConcurrentUpdateError, PlayerAlreadyExists, PlayerInUse
from ..stores import MatchStore, ProfileStore
from ..time_utils import require_utc, utcnow
from ..utils.sentry import report_inconsistency
from .ledger import MatchLedger
from .profiles import (
    apply_doubles_result,
    apply_singles_result,
    revert_doubles_result,
    revert_singles_result,
)
from .rating import INITIAL_RATING
from .summary import ExternalServiceError, MatchSummaryRequest, SummaryGenerator
from .validation import (
    ValidationError,
    validate_participants,
    validate_score,
    validate_scores_differ,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MatchRecordT = SinglesMatch | DoublesMatch


@dataclass
class DeletionReport:
    match: MatchRecordT
    reverted_player_ids: list[str] = field(default_factory=list)
    missing_player_ids: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.missing_player_ids


async def _in_transaction(
    session: AsyncSession, operation: Callable[[], Awaitable[T]], *, action: str
) -> T:
    attempts = profile_write_retries()
    for attempt in range(1, attempts + 1):
        try:
            result = await operation()
            await session.commit()
            return result
        except StaleDataError:
            await session.rollback()
            if attempt < attempts:
                logger.warning(
                    "Profile conflict while %s (attempt %s/%s); retrying",
                    action,
                    attempt,
                    attempts,
                )
        except Exception:
            await session.rollback()
            raise
    logger.error("Gave up %s after %s conflicting attempts", action, attempts)
    raise ConcurrentUpdateError(attempts)


async def _summarize(
    generator: Optional[SummaryGenerator], request: MatchSummaryRequest
) -> Optional[str]:
    if generator is None:
        return None
    try:
        return await generator.generate(request)
    except ExternalServiceError as exc:
        logger.warning("Match summary unavailable: %s", exc)
        return None


async def _names_for_summary(
    session: AsyncSession,
    player_ids: list[str],
    generator: Optional[SummaryGenerator],
) -> dict[str, PlayerProfile]:
    if generator is None:
        return {}
    named = await ProfileStore(session).get_many(player_ids)
    # End the read transaction; the summary request can take seconds.
    await session.rollback()
    return named


def _played_at(value: Optional[datetime]) -> datetime:
    if value is None:
        return utcnow()
    try:
        return require_utc(value, field_name="played_at")
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


async def register_player(
    session: AsyncSession,
    username: str,
    display_name: Optional[str] = None,
    *,
    email: Optional[str] = None,
) -> PlayerProfile:
    """Create a profile with default ratings and empty statistics.

    Raises:
        PlayerAlreadyExists: If the username is taken, ignoring case.
    """
    username = username.strip()
    display_name = display_name.strip() if display_name else None
    profile = new_profile(
        uuid.uuid4().hex,
        username,
        display_name,
        email=email,
        created_at=utcnow(),
    )
    store = ProfileStore(session)
    try:
        await store.add(profile)
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_unique_violation(exc, "uq_profile_username_lower"):
            raise PlayerAlreadyExists(username) from exc
        raise
    logger.info("Registered player %s (%s)", profile.id, username)
    return profile


async def delete_player(session: AsyncSession, player_id: str) -> None:
    """Delete a profile that no recorded match references.

    Raises:
        PlayerNotFound: If the profile does not exist.
        PlayerInUse: If any match still names the player.
    """
    store = ProfileStore(session)
    await store.get(player_id)
    if await MatchLedger(MatchStore(session)).references_player(player_id):
        raise PlayerInUse(player_id)
    await store.delete(player_id)
    await session.commit()
    logger.info("Deleted player %s", player_id)


async def record_singles_match(
    session: AsyncSession,
    *,
    player1_id: str,
    player2_id: str,
    player1_score: int,
    player2_score: int,
    created_by: Optional[str],
    played_at: Optional[datetime] = None,
    summary_generator: Optional[SummaryGenerator] = None,
    commentator_name: Optional[str] = None,
) -> SinglesMatch:
    """Record a singles result and update both players' profiles.

    The winner is the player with the higher score. ``created_by`` is the
    acting identity and is stored as given.

    Raises:
        ValidationError: Before anything is read or written, on a tie, a
            missing or repeated player, a negative score or a ``played_at``
            without a timezone offset.
        PlayerNotFound: If either profile does not exist.
        ConcurrentUpdateError: If the profiles kept changing underneath.
    """
    p1_id, p2_id = validate_participants([player1_id, player2_id])
    s1 = validate_score(player1_score, "Player 1 score")
    s2 = validate_score(player2_score, "Player 2 score")
    validate_scores_differ(s1, s2)
    winner_id = p1_id if s1 > s2 else p2_id
    when = _played_at(played_at)
    match_id = uuid.uuid4().hex

    profiles = ProfileStore(session)
    ledger = MatchLedger(MatchStore(session))

    summary: Optional[str] = None
    named = await _names_for_summary(session, [p1_id, p2_id], summary_generator)
    # Unknown players fail inside the transaction; no summary is requested.
    if summary_generator is not None and len(named) == 2:
        name1 = named[p1_id].name
        name2 = named[p2_id].name
        summary = await _summarize(
            summary_generator,
            MatchSummaryRequest(
                match_type="singles",
                side1=(name1,),
                side2=(name2,),
                side1_score=s1,
                side2_score=s2,
                winners=(name1 if winner_id == p1_id else name2,),
                commentator_name=commentator_name,
            ),
        )

    async def operation() -> SinglesMatch:
        now = utcnow()
        first = await profiles.get(p1_id)
        second = await profiles.get(p2_id)
        updated1 = apply_singles_result(first, s1, s2, winner_id == p1_id, now=now)
        updated2 = apply_singles_result(second, s2, s1, winner_id == p2_id, now=now)
        match = SinglesMatch(
            id=match_id,
            player1_id=p1_id,
            player2_id=p2_id,
            player1_score=s1,
            player2_score=s2,
            winner_id=winner_id,
            played_at=when,
            created_by=created_by,
            match_summary=summary,
            rating_changes={
                p1_id: updated1.singles_rating - first.singles_rating,
                p2_id: updated2.singles_rating - second.singles_rating,
            },
        )
        await ledger.record_match(match)
        await profiles.put(updated1)
        await profiles.put(updated2)
        return match

    match = await _in_transaction(session, operation, action="recording singles match")
    logger.info("Recorded singles match %s (%s vs %s)", match.id, p1_id, p2_id)
    return match


async def record_doubles_match(
    session: AsyncSession,
    *,
    team1: tuple[str, str],
    team2: tuple[str, str],
    team1_score: int,
    team2_score: int,
    created_by: Optional[str],
    played_at: Optional[datetime] = None,
    summary_generator: Optional[SummaryGenerator] = None,
    commentator_name: Optional[str] = None,
) -> DoublesMatch:
    """Record a doubles result and update all four profiles.

    Each player's partner entry for their teammate is updated on both sides
    of the pairing in the same transaction.
    """
    ids = validate_participants([*team1, *team2])
    t1 = validate_score(team1_score, "Team 1 score")
    t2 = validate_score(team2_score, "Team 2 score")
    validate_scores_differ(t1, t2)
    team1 = (ids[0], ids[1])
    team2 = (ids[2], ids[3])
    winner_team = "team1" if t1 > t2 else "team2"
    when = _played_at(played_at)
    match_id = uuid.uuid4().hex

    profiles = ProfileStore(session)
    ledger = MatchLedger(MatchStore(session))

    summary: Optional[str] = None
    named = await _names_for_summary(session, ids, summary_generator)
    if summary_generator is not None and len(named) == 4:
        side1 = tuple(named[pid].name for pid in team1)
        side2 = tuple(named[pid].name for pid in team2)
        summary = await _summarize(
            summary_generator,
            MatchSummaryRequest(
                match_type="doubles",
                side1=side1,
                side2=side2,
                side1_score=t1,
                side2_score=t2,
                winners=side1 if winner_team == "team1" else side2,
                commentator_name=commentator_name,
            ),
        )

    async def operation() -> DoublesMatch:
        now = utcnow()
        loaded = [await profiles.get(pid) for pid in ids]
        rating_changes: dict[str, int] = {}
        team_rating_changes: dict[str, int] = {}
        updated: list[PlayerProfile] = []
        for index, profile in enumerate(loaded):
            on_team1 = index < 2
            team = team1 if on_team1 else team2
            partner_id = team[1] if profile.id == team[0] else team[0]
            scored, conceded = (t1, t2) if on_team1 else (t2, t1)
            won = (winner_team == "team1") == on_team1
            after = apply_doubles_result(
                profile,
                scored,
                conceded,
                won,
                partner_id,
                played_at=when,
                now=now,
            )
            before_team = profile.team_partners.get(partner_id)
            before_team_rating = (
                before_team.team_rating if before_team is not None else INITIAL_RATING
            )
            rating_changes[profile.id] = after.doubles_rating - profile.doubles_rating
            team_rating_changes[profile.id] = (
                after.team_partners[partner_id].team_rating - before_team_rating
            )
            updated.append(after)

        match = DoublesMatch(
            id=match_id,
            team1_player1_id=team1[0],
            team1_player2_id=team1[1],
            team2_player1_id=team2[0],
            team2_player2_id=team2[1],
            team1_score=t1,
            team2_score=t2,
            winner_team=winner_team,
            played_at=when,
            created_by=created_by,
            match_summary=summary,
            rating_changes=rating_changes,
            team_rating_changes=team_rating_changes,
        )
        await ledger.record_match(match)
        for profile in updated:
            await profiles.put(profile)
        return match

    match = await _in_transaction(session, operation, action="recording doubles match")
    logger.info(
        "Recorded doubles match %s (%s vs %s)",
        match.id,
        "/".join(team1),
        "/".join(team2),
    )
    return match


def _revert(
    profile: PlayerProfile,
    match: MatchRecordT,
    now: datetime,
    partner_last_played: Optional[datetime] = None,
) -> PlayerProfile:
    pid = profile.id
    if isinstance(match, SinglesMatch):
        if pid == match.player1_id:
            scored, conceded = match.player1_score, match.player2_score
        else:
            scored, conceded = match.player2_score, match.player1_score
        return revert_singles_result(
            profile,
            scored,
            conceded,
            match.winner_id == pid,
            applied_delta=match.rating_changes.get(pid),
            now=now,
        )

    on_team1 = pid in match.team1
    team = match.team1 if on_team1 else match.team2
    partner_id = team[1] if pid == team[0] else team[0]
    scored, conceded = (
        (match.team1_score, match.team2_score)
        if on_team1
        else (match.team2_score, match.team1_score)
    )
    return revert_doubles_result(
        profile,
        scored,
        conceded,
        (match.winner_team == "team1") == on_team1,
        partner_id,
        applied_delta=match.rating_changes.get(pid),
        applied_team_delta=match.team_rating_changes.get(pid),
        last_played=partner_last_played,
        now=now,
    )


async def delete_match(session: AsyncSession, match_id: str) -> DeletionReport:
    """Remove a match and undo its contribution to every participant.

    Participants whose profile no longer exists are skipped and listed in
    the report; the match is still removed.

    Raises:
        MatchNotFound: If no match with ``match_id`` exists.
    """
    profiles = ProfileStore(session)
    ledger = MatchLedger(MatchStore(session))

    async def operation() -> DeletionReport:
        now = utcnow()
        match = await ledger.delete_match(match_id)
        report = DeletionReport(match=match)
        last_played: dict[str, Optional[datetime]] = {}
        if isinstance(match, DoublesMatch):
            for team in (match.team1, match.team2):
                when = await ledger.last_played_together(*team, exclude=match.id)
                last_played.update(dict.fromkeys(team, when))
        for pid in match.participant_ids:
            profile = await profiles.find(pid)
            if profile is None:
                report.missing_player_ids.append(pid)
                continue
            await profiles.put(_revert(profile, match, now, last_played.get(pid)))
            report.reverted_player_ids.append(pid)
        return report

    report = await _in_transaction(session, operation, action="deleting match")
    if report.missing_player_ids:
        logger.error(
            "Deleted match %s but could not revert missing profiles: %s",
            match_id,
            ", ".join(report.missing_player_ids),
        )
        report_inconsistency(
            "Match deleted with unreverted participants",
            match_id=match_id,
            missing_player_ids=report.missing_player_ids,
        )
    logger.info("Deleted %s match %s", report.match.match_type, match_id)
    return report
