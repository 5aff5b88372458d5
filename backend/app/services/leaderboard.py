"""Read-side leaderboard projection.

Standings are rebuilt from the full match list on every request; nothing is
maintained incrementally. Doubles players and teams are credited the whole
team score, unlike the half-share used by the doubles rating update.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence

from ..documents import DoublesMatch, PlayerProfile, SinglesMatch
from .profiles import win_rate

UNKNOWN_PLAYER = "Unknown"


class Discipline(str, Enum):
    SINGLES = "singles"
    DOUBLES = "doubles"
    TEAMS = "teams"


class StatView(str, Enum):
    WINS = "wins"
    POINTS = "points"


def _avg(points: int, played: int) -> float:
    if played <= 0:
        return 0.0
    return round(points / played, 1)


@dataclass
class RecordLine:
    """Win/loss and point totals for one discipline."""

    matches_played: int = 0
    matches_won: int = 0
    matches_lost: int = 0
    points_scored: int = 0
    points_conceded: int = 0

    def add(self, scored: int, conceded: int, won: bool) -> None:
        self.matches_played += 1
        if won:
            self.matches_won += 1
        else:
            self.matches_lost += 1
        self.points_scored += scored
        self.points_conceded += conceded

    @property
    def win_rate(self) -> float:
        return win_rate(self.matches_won, self.matches_played)

    @property
    def avg_points_per_match(self) -> float:
        return _avg(self.points_scored, self.matches_played)

    @property
    def point_differential(self) -> int:
        return self.points_scored - self.points_conceded


@dataclass
class PlayerStandings:
    player_id: str
    username: str
    display_name: str | None
    singles: RecordLine = field(default_factory=RecordLine)
    doubles: RecordLine = field(default_factory=RecordLine)
    biggest_win: int = 0

    @property
    def name(self) -> str:
        return self.display_name or self.username


@dataclass
class TeamStandings:
    team_id: str
    player1_id: str
    player2_id: str
    player1_name: str
    player2_name: str
    record: RecordLine = field(default_factory=RecordLine)


def team_key(player_a: str, player_b: str) -> str:
    """Canonical id of a doubles pairing, independent of slot order."""
    return "-".join(sorted((player_a, player_b)))


def compute_player_standings(
    profiles: Iterable[PlayerProfile],
    matches: Iterable[SinglesMatch | DoublesMatch],
) -> list[PlayerStandings]:
    """Aggregate singles and doubles records for every profile.

    Profiles without matches are included with empty records, in the order
    they were given. Matches naming unknown players only count for the
    players that do exist.
    """
    standings = {
        p.id: PlayerStandings(p.id, p.username, p.displayName) for p in profiles
    }

    for match in matches:
        if isinstance(match, SinglesMatch):
            sides = (
                (match.player1_id, match.player1_score, match.player2_score),
                (match.player2_id, match.player2_score, match.player1_score),
            )
            for pid, scored, conceded in sides:
                entry = standings.get(pid)
                if entry is None:
                    continue
                won = match.winner_id == pid
                entry.singles.add(scored, conceded, won)
                if won:
                    entry.biggest_win = max(entry.biggest_win, scored - conceded)
        else:
            for team, winner, scored, conceded in (
                (match.team1, "team1", match.team1_score, match.team2_score),
                (match.team2, "team2", match.team2_score, match.team1_score),
            ):
                won = match.winner_team == winner
                for pid in team:
                    entry = standings.get(pid)
                    if entry is not None:
                        entry.doubles.add(scored, conceded, won)

    return list(standings.values())


def compute_team_standings(
    matches: Iterable[SinglesMatch | DoublesMatch],
    names: dict[str, str] | None = None,
) -> list[TeamStandings]:
    """Group doubles matches by pairing and aggregate each team's record.

    ``names`` maps player id to display name. Teams are returned in order of
    first appearance.
    """
    names = names or {}
    teams: dict[str, TeamStandings] = {}

    for match in matches:
        if not isinstance(match, DoublesMatch):
            continue
        for (p1, p2), winner, scored, conceded in (
            (match.team1, "team1", match.team1_score, match.team2_score),
            (match.team2, "team2", match.team2_score, match.team1_score),
        ):
            key = team_key(p1, p2)
            team = teams.get(key)
            if team is None:
                team = TeamStandings(
                    team_id=key,
                    player1_id=p1,
                    player2_id=p2,
                    player1_name=names.get(p1, UNKNOWN_PLAYER),
                    player2_name=names.get(p2, UNKNOWN_PLAYER),
                )
                teams[key] = team
            team.record.add(scored, conceded, match.winner_team == winner)

    return list(teams.values())


def _sort_key(record: RecordLine, view: StatView):
    if view == StatView.WINS:
        return (record.matches_won, record.win_rate)
    return (record.point_differential,)


def rank_players(
    standings: Sequence[PlayerStandings], discipline: Discipline, view: StatView
) -> list[PlayerStandings]:
    """Sort players for a singles or doubles view, best first.

    ``wins`` orders by matches won, then win rate; ``points`` by point
    differential. The sort is stable, so full ties keep their input order.
    """
    if discipline == Discipline.TEAMS:
        raise ValueError("use rank_teams for the teams view")

    def record(entry: PlayerStandings) -> RecordLine:
        return entry.singles if discipline == Discipline.SINGLES else entry.doubles

    return sorted(standings, key=lambda s: _sort_key(record(s), view), reverse=True)


def rank_teams(standings: Sequence[TeamStandings], view: StatView) -> list[TeamStandings]:
    return sorted(standings, key=lambda t: _sort_key(t.record, view), reverse=True)
