from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..documents import PlayerProfile
from ..exceptions import ProblemDetail
from ..schemas import (
    PlayerCreate,
    PlayerListOut,
    PlayerOut,
    PlayerProfileOut,
    TeamPartnerOut,
)
from ..services import rating_color
from ..services.profiles import doubles_win_rate, singles_win_rate
from ..services.submission import delete_player as delete_player_service
from ..services.submission import register_player
from ..stores import ProfileStore
from ..time_utils import coerce_utc
from .auth import get_current_user_id, limiter, write_rate_limit

router = APIRouter(
    prefix="/players",
    tags=["players"],
    responses={400: {"model": ProblemDetail}, 404: {"model": ProblemDetail}},
)

UNKNOWN_PARTNER = "Unknown Player"


def _player_out(profile: PlayerProfile) -> PlayerOut:
    return PlayerOut(
        id=profile.id,
        username=profile.username,
        displayName=profile.displayName,
        singlesRating=profile.singles_rating,
        doublesRating=profile.doubles_rating,
        overallRating=profile.overall_rating,
        singlesRatingCategory=profile.singles_rating_category.value,
        doublesRatingCategory=profile.doubles_rating_category.value,
        ratingColor=rating_color(profile.overall_rating),
    )


def _profile_out(
    profile: PlayerProfile, partners: dict[str, PlayerProfile]
) -> PlayerProfileOut:
    base = _player_out(profile).model_dump()
    team_partners = [
        TeamPartnerOut(
            partnerId=partner_id,
            partnerName=(
                partners[partner_id].name if partner_id in partners else UNKNOWN_PARTNER
            ),
            matchesPlayed=stats.matches_played,
            matchesWon=stats.matches_won,
            teamRating=stats.team_rating,
            pointsScored=stats.points_scored,
            pointsConceded=stats.points_conceded,
            lastPlayed=coerce_utc(stats.last_played),
        )
        for partner_id, stats in profile.team_partners.items()
    ]
    team_partners.sort(key=lambda t: (-t.matchesPlayed, t.partnerName.lower()))
    return PlayerProfileOut(
        **base,
        email=profile.email,
        singlesMatchesPlayed=profile.singles_matches_played,
        singlesMatchesWon=profile.singles_matches_won,
        singlesWinRate=singles_win_rate(profile),
        singlesPointsScored=profile.singles_points_scored,
        singlesPointsConceded=profile.singles_points_conceded,
        doublesMatchesPlayed=profile.doubles_matches_played,
        doublesMatchesWon=profile.doubles_matches_won,
        doublesWinRate=doubles_win_rate(profile),
        doublesPointsScored=profile.doubles_points_scored,
        doublesPointsConceded=profile.doubles_points_conceded,
        teamPartners=team_partners,
        createdAt=coerce_utc(profile.created_at),
        updatedAt=coerce_utc(profile.updated_at),
    )


@router.post("", response_model=PlayerOut, status_code=201)
@limiter.limit(write_rate_limit)
async def create_player(
    request: Request,
    body: PlayerCreate,
    session: AsyncSession = Depends(get_session),
    current_user_id: str = Depends(get_current_user_id),
):
    profile = await register_player(
        session, body.username, body.displayName, email=body.email
    )
    return _player_out(profile)


@router.get("", response_model=PlayerListOut)
async def list_players(q: str = "", session: AsyncSession = Depends(get_session)):
    needle = q.strip().lower()

    def matches(profile: PlayerProfile) -> bool:
        return needle in profile.username.lower() or needle in profile.name.lower()

    profiles = await ProfileStore(session).query(matches if needle else None)
    return PlayerListOut(
        players=[_player_out(p) for p in profiles], total=len(profiles)
    )


@router.get("/{player_id}", response_model=PlayerProfileOut)
async def get_player(player_id: str, session: AsyncSession = Depends(get_session)):
    store = ProfileStore(session)
    profile = await store.get(player_id)
    partners = await store.get_many(profile.team_partners.keys())
    return _profile_out(profile, partners)


@router.delete(
    "/{player_id}", status_code=204, responses={409: {"model": ProblemDetail}}
)
@limiter.limit(write_rate_limit)
async def delete_player(
    request: Request,
    player_id: str,
    session: AsyncSession = Depends(get_session),
    current_user_id: str = Depends(get_current_user_id),
):
    await delete_player_service(session, player_id)
    return Response(status_code=204)
