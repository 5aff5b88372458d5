from typing import Iterable

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..documents import DoublesMatch, PlayerProfile, SinglesMatch
from ..exceptions import ProblemDetail
from ..schemas import (
    DoublesMatchCreate,
    MatchDeletedOut,
    MatchOut,
    MatchPlayerOut,
    SinglesMatchCreate,
)
from ..services.ledger import MatchLedger
from ..services.submission import (
    delete_match as delete_match_service,
    record_doubles_match,
    record_singles_match,
)
from ..services.summary import SummaryGenerator, get_summary_generator
from ..stores import MatchStore, ProfileStore
from ..time_utils import coerce_utc
from .auth import get_current_user_id, limiter, write_rate_limit

router = APIRouter(
    prefix="/matches",
    tags=["matches"],
    responses={
        404: {"model": ProblemDetail},
        409: {"model": ProblemDetail},
        422: {"model": ProblemDetail},
    },
)

UNKNOWN_PLAYER = "Unknown Player"


async def _names(
    session: AsyncSession, player_ids: Iterable[str]
) -> dict[str, PlayerProfile]:
    return await ProfileStore(session).get_many(player_ids)


def _match_out(
    match: SinglesMatch | DoublesMatch, players: dict[str, PlayerProfile]
) -> MatchOut:
    def player(pid: str) -> MatchPlayerOut:
        profile = players.get(pid)
        return MatchPlayerOut(
            id=pid, name=profile.name if profile is not None else UNKNOWN_PLAYER
        )

    common = dict(
        id=match.id,
        matchType=match.match_type,
        playedAt=coerce_utc(match.played_at),
        createdBy=match.created_by,
        summary=match.match_summary,
        ratingChanges=match.rating_changes,
    )
    if isinstance(match, SinglesMatch):
        return MatchOut(
            **common,
            player1=player(match.player1_id),
            player2=player(match.player2_id),
            player1Score=match.player1_score,
            player2Score=match.player2_score,
            winnerId=match.winner_id,
        )
    return MatchOut(
        **common,
        team1=[player(pid) for pid in match.team1],
        team2=[player(pid) for pid in match.team2],
        team1Score=match.team1_score,
        team2Score=match.team2_score,
        winnerTeam=match.winner_team,
    )


# GET /api/v0/matches
@router.get("", response_model=list[MatchOut])
async def list_matches(
    response: Response,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    rows = await MatchStore(session).page(limit=limit + 1, offset=offset)
    has_more = len(rows) > limit
    rows = rows[:limit]
    next_offset = offset + limit if has_more else None

    player_ids = {pid for m in rows for pid in m.participant_ids}
    players = await _names(session, player_ids)

    response.headers["X-Limit"] = str(limit)
    response.headers["X-Offset"] = str(offset)
    response.headers["X-Has-More"] = "true" if has_more else "false"
    if next_offset is not None:
        response.headers["X-Next-Offset"] = str(next_offset)

    return [_match_out(m, players) for m in rows]


@router.post("/singles", response_model=MatchOut, status_code=201)
@limiter.limit(write_rate_limit)
async def create_singles_match(
    request: Request,
    body: SinglesMatchCreate,
    session: AsyncSession = Depends(get_session),
    current_user_id: str = Depends(get_current_user_id),
    summary_generator: SummaryGenerator = Depends(get_summary_generator),
):
    match = await record_singles_match(
        session,
        player1_id=body.player1Id,
        player2_id=body.player2Id,
        player1_score=body.player1Score,
        player2_score=body.player2Score,
        created_by=current_user_id,
        played_at=body.playedAt,
        summary_generator=summary_generator if body.generateSummary else None,
        commentator_name=body.commentatorName,
    )
    return _match_out(match, await _names(session, match.participant_ids))


@router.post("/doubles", response_model=MatchOut, status_code=201)
@limiter.limit(write_rate_limit)
async def create_doubles_match(
    request: Request,
    body: DoublesMatchCreate,
    session: AsyncSession = Depends(get_session),
    current_user_id: str = Depends(get_current_user_id),
    summary_generator: SummaryGenerator = Depends(get_summary_generator),
):
    match = await record_doubles_match(
        session,
        team1=(body.team1Player1Id, body.team1Player2Id),
        team2=(body.team2Player1Id, body.team2Player2Id),
        team1_score=body.team1Score,
        team2_score=body.team2Score,
        created_by=current_user_id,
        played_at=body.playedAt,
        summary_generator=summary_generator if body.generateSummary else None,
        commentator_name=body.commentatorName,
    )
    return _match_out(match, await _names(session, match.participant_ids))


# GET /api/v0/matches/{mid}
@router.get("/{mid}", response_model=MatchOut)
async def get_match(mid: str, session: AsyncSession = Depends(get_session)):
    match = await MatchLedger(MatchStore(session)).get_match(mid)
    return _match_out(match, await _names(session, match.participant_ids))


# DELETE /api/v0/matches/{mid}
@router.delete("/{mid}", response_model=MatchDeletedOut)
@limiter.limit(write_rate_limit)
async def delete_match(
    request: Request,
    mid: str,
    session: AsyncSession = Depends(get_session),
    current_user_id: str = Depends(get_current_user_id),
):
    report = await delete_match_service(session, mid)
    return MatchDeletedOut(
        id=report.match.id,
        revertedPlayerIds=report.reverted_player_ids,
        missingPlayerIds=report.missing_player_ids,
    )
