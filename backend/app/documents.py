"""Persisted document shapes for player profiles and match records.

Field names mirror the documents already stored by the web client
(``winner_team``, ``match_type``, ``displayName`` ...) so existing data loads
unchanged. Unknown keys are kept on profiles so older documents round-trip.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .services.rating import INITIAL_RATING, RatingCategory, rating_category

MatchType = Literal["singles", "doubles"]
WinnerTeam = Literal["team1", "team2"]


class TeamPartnerStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    matches_played: int = 0
    matches_won: int = 0
    team_rating: int = INITIAL_RATING
    points_scored: int = 0
    points_conceded: int = 0
    last_played: Optional[datetime] = None


class PlayerProfile(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    id: str
    username: str
    displayName: Optional[str] = None
    email: Optional[str] = None

    singles_rating: int = INITIAL_RATING
    doubles_rating: int = INITIAL_RATING
    overall_rating: int = INITIAL_RATING
    singles_rating_category: RatingCategory = rating_category(INITIAL_RATING)
    doubles_rating_category: RatingCategory = rating_category(INITIAL_RATING)

    singles_matches_played: int = 0
    singles_matches_won: int = 0
    doubles_matches_played: int = 0
    doubles_matches_won: int = 0

    singles_points_scored: int = 0
    singles_points_conceded: int = 0
    doubles_points_scored: int = 0
    doubles_points_conceded: int = 0

    team_partners: Dict[str, TeamPartnerStats] = Field(default_factory=dict)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.displayName or self.username

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class SinglesMatch(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    match_type: Literal["singles"] = "singles"
    id: str
    player1_id: str
    player2_id: str
    player1_score: int
    player2_score: int
    winner_id: str
    played_at: datetime
    created_by: Optional[str] = None
    match_summary: Optional[str] = None
    # player id -> individual rating change actually applied by this match
    rating_changes: Dict[str, int] = Field(default_factory=dict)

    @property
    def participant_ids(self) -> Tuple[str, ...]:
        return (self.player1_id, self.player2_id)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class DoublesMatch(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    match_type: Literal["doubles"] = "doubles"
    id: str
    team1_player1_id: str
    team1_player2_id: str
    team2_player1_id: str
    team2_player2_id: str
    team1_score: int
    team2_score: int
    winner_team: WinnerTeam
    played_at: datetime
    created_by: Optional[str] = None
    match_summary: Optional[str] = None
    rating_changes: Dict[str, int] = Field(default_factory=dict)
    # player id -> change applied to team_partners[partner].team_rating
    team_rating_changes: Dict[str, int] = Field(default_factory=dict)

    @property
    def team1(self) -> Tuple[str, str]:
        return (self.team1_player1_id, self.team1_player2_id)

    @property
    def team2(self) -> Tuple[str, str]:
        return (self.team2_player1_id, self.team2_player2_id)

    @property
    def participant_ids(self) -> Tuple[str, ...]:
        return self.team1 + self.team2

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


MatchRecord = Annotated[
    Union[SinglesMatch, DoublesMatch], Field(discriminator="match_type")
]

_match_record_adapter: TypeAdapter[Any] = TypeAdapter(MatchRecord)


def parse_match_document(data: dict[str, Any]) -> SinglesMatch | DoublesMatch:
    """Build the typed match record for a stored document."""
    return _match_record_adapter.validate_python(data)


def new_profile(
    profile_id: str,
    username: str,
    display_name: str | None = None,
    *,
    email: str | None = None,
    created_at: datetime | None = None,
) -> PlayerProfile:
    return PlayerProfile(
        id=profile_id,
        username=username,
        displayName=display_name or username,
        email=email,
        created_at=created_at,
        updated_at=created_at,
    )
