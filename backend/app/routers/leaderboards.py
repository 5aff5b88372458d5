from contextlib import aclosing

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..schemas import LeaderboardEntryOut, LeaderboardOut, TeamLeaderboardEntryOut
from ..services import rating_category
from ..services.leaderboard import (
    Discipline,
    StatView,
    compute_player_standings,
    compute_team_standings,
    rank_players,
    rank_teams,
)
from ..services.ledger import MatchLedger
from ..stores import MatchStore, ProfileStore

# Resource-only prefix; no /api or /api/v0 here
router = APIRouter(prefix="/leaderboards", tags=["leaderboards"])


# GET /api/v0/leaderboards?discipline=singles&view=wins
@router.get("", response_model=LeaderboardOut)
async def leaderboard(
    discipline: Discipline = Query(Discipline.SINGLES),
    view: StatView = Query(StatView.WINS),
    session: AsyncSession = Depends(get_session),
):
    profiles = await ProfileStore(session).query()
    async with aclosing(MatchLedger(MatchStore(session)).list_matches()) as stream:
        matches = [m async for m in stream]

    if discipline == Discipline.TEAMS:
        names = {p.id: p.name for p in profiles}
        ranked_teams = rank_teams(compute_team_standings(matches, names), view)
        return LeaderboardOut(
            discipline=discipline.value,
            view=view.value,
            teams=[
                TeamLeaderboardEntryOut(
                    rank=index,
                    teamId=team.team_id,
                    player1Id=team.player1_id,
                    player2Id=team.player2_id,
                    player1Name=team.player1_name,
                    player2Name=team.player2_name,
                    matchesPlayed=team.record.matches_played,
                    matchesWon=team.record.matches_won,
                    matchesLost=team.record.matches_lost,
                    winRate=team.record.win_rate,
                    pointsScored=team.record.points_scored,
                    pointsConceded=team.record.points_conceded,
                    pointDifferential=team.record.point_differential,
                    avgPointsPerMatch=team.record.avg_points_per_match,
                )
                for index, team in enumerate(ranked_teams, start=1)
            ],
        )

    ratings = {
        p.id: p.singles_rating if discipline == Discipline.SINGLES else p.doubles_rating
        for p in profiles
    }
    ranked = rank_players(compute_player_standings(profiles, matches), discipline, view)
    leaders = []
    for index, entry in enumerate(ranked, start=1):
        record = entry.singles if discipline == Discipline.SINGLES else entry.doubles
        rating = ratings[entry.player_id]
        leaders.append(
            LeaderboardEntryOut(
                rank=index,
                playerId=entry.player_id,
                playerName=entry.name,
                rating=rating,
                ratingCategory=rating_category(rating).value,
                matchesPlayed=record.matches_played,
                matchesWon=record.matches_won,
                matchesLost=record.matches_lost,
                winRate=record.win_rate,
                pointsScored=record.points_scored,
                pointsConceded=record.points_conceded,
                pointDifferential=record.point_differential,
                avgPointsPerMatch=record.avg_points_per_match,
                biggestWin=(
                    entry.biggest_win if discipline == Discipline.SINGLES else None
                ),
            )
        )
    return LeaderboardOut(discipline=discipline.value, view=view.value, leaders=leaders)
