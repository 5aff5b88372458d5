from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .time_utils import require_utc


class IdentityOut(BaseModel):
    id: str


class PlayerCreate(BaseModel):
    username: str = Field(
        ..., min_length=1, max_length=50, pattern=r"^[A-Za-z0-9 ._'-]+$"
    )
    displayName: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=254)

    @field_validator("username", mode="before")
    @classmethod
    def _strip_username(cls, value: str) -> str:
        if not isinstance(value, str):
            raise TypeError("username must be a string")
        return value.strip()

    @field_validator("displayName", mode="before")
    @classmethod
    def _normalize_display_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, str):
            raise TypeError("displayName must be a string")
        trimmed = value.strip()
        return trimmed or None


class TeamPartnerOut(BaseModel):
    partnerId: str
    partnerName: str
    matchesPlayed: int
    matchesWon: int
    teamRating: int
    pointsScored: int
    pointsConceded: int
    lastPlayed: Optional[datetime] = None


class PlayerOut(BaseModel):
    id: str
    username: str
    displayName: Optional[str] = None
    singlesRating: int
    doublesRating: int
    overallRating: int
    singlesRatingCategory: str
    doublesRatingCategory: str
    ratingColor: str


class PlayerListOut(BaseModel):
    players: List[PlayerOut]
    total: int


class PlayerProfileOut(PlayerOut):
    email: Optional[str] = None
    singlesMatchesPlayed: int
    singlesMatchesWon: int
    singlesWinRate: float
    singlesPointsScored: int
    singlesPointsConceded: int
    doublesMatchesPlayed: int
    doublesMatchesWon: int
    doublesWinRate: float
    doublesPointsScored: int
    doublesPointsConceded: int
    teamPartners: List[TeamPartnerOut]
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class _MatchCreateBase(BaseModel):
    playedAt: Optional[datetime] = None
    commentatorName: Optional[str] = Field(default=None, max_length=100)
    generateSummary: bool = True

    @field_validator("playedAt")
    @classmethod
    def _normalize_played_at(cls, v: datetime | None) -> datetime | None:
        return require_utc(v, field_name="playedAt")


class SinglesMatchCreate(_MatchCreateBase):
    player1Id: Optional[str] = None
    player2Id: Optional[str] = None
    player1Score: int
    player2Score: int


class DoublesMatchCreate(_MatchCreateBase):
    team1Player1Id: Optional[str] = None
    team1Player2Id: Optional[str] = None
    team2Player1Id: Optional[str] = None
    team2Player2Id: Optional[str] = None
    team1Score: int
    team2Score: int


class MatchPlayerOut(BaseModel):
    id: str
    name: str


class MatchOut(BaseModel):
    id: str
    matchType: Literal["singles", "doubles"]
    playedAt: datetime
    createdBy: Optional[str] = None
    summary: Optional[str] = None
    # singles
    player1: Optional[MatchPlayerOut] = None
    player2: Optional[MatchPlayerOut] = None
    player1Score: Optional[int] = None
    player2Score: Optional[int] = None
    winnerId: Optional[str] = None
    # doubles
    team1: Optional[List[MatchPlayerOut]] = None
    team2: Optional[List[MatchPlayerOut]] = None
    team1Score: Optional[int] = None
    team2Score: Optional[int] = None
    winnerTeam: Optional[Literal["team1", "team2"]] = None
    ratingChanges: Dict[str, int] = Field(default_factory=dict)


class MatchDeletedOut(BaseModel):
    id: str
    revertedPlayerIds: List[str]
    missingPlayerIds: List[str]


class LeaderboardEntryOut(BaseModel):
    rank: int
    playerId: str
    playerName: str
    rating: int
    ratingCategory: str
    matchesPlayed: int
    matchesWon: int
    matchesLost: int
    winRate: float
    pointsScored: int
    pointsConceded: int
    pointDifferential: int
    avgPointsPerMatch: float
    biggestWin: Optional[int] = None


class TeamLeaderboardEntryOut(BaseModel):
    rank: int
    teamId: str
    player1Id: str
    player2Id: str
    player1Name: str
    player2Name: str
    matchesPlayed: int
    matchesWon: int
    matchesLost: int
    winRate: float
    pointsScored: int
    pointsConceded: int
    pointDifferential: int
    avgPointsPerMatch: float


class LeaderboardOut(BaseModel):
    discipline: Literal["singles", "doubles", "teams"]
    view: Literal["wins", "points"]
    leaders: List[LeaderboardEntryOut] = Field(default_factory=list)
    teams: List[TeamLeaderboardEntryOut] = Field(default_factory=list)
