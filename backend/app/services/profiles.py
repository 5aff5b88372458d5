"""Mutation rules for player profile statistics.

Every function takes a profile snapshot and returns a new one; nothing here
touches storage. Counters never go below zero: a revert that would underflow
clamps to 0 instead of failing.
"""

from __future__ import annotations

from datetime import datetime

from ..documents import PlayerProfile, TeamPartnerStats
from ..time_utils import utcnow
from .rating import (
    INITIAL_RATING,
    apply_delta,
    overall_rating,
    rating_category,
    rating_delta,
)


def _floor_zero(value: int) -> int:
    return max(0, value)


def _overall(profile: PlayerProfile) -> int:
    has_singles = profile.singles_matches_played > 0
    has_doubles = profile.doubles_matches_played > 0
    if has_singles and has_doubles:
        return overall_rating(profile.singles_rating, profile.doubles_rating)
    if has_singles:
        return profile.singles_rating
    if has_doubles:
        return profile.doubles_rating
    return INITIAL_RATING


def _updated(profile: PlayerProfile, now: datetime | None, **changes) -> PlayerProfile:
    changes["updated_at"] = now or utcnow()
    updated = profile.model_copy(update=changes)
    return updated.model_copy(
        update={
            "singles_rating_category": rating_category(updated.singles_rating),
            "doubles_rating_category": rating_category(updated.doubles_rating),
            "overall_rating": _overall(updated),
        }
    )


def doubles_rating_delta(team_score: int, opponent_score: int, is_winner: bool) -> int:
    """Individual doubles change: each teammate is credited half the team score."""
    return rating_delta(team_score / 2, opponent_score / 2, is_winner)


def apply_singles_result(
    profile: PlayerProfile,
    points_scored: int,
    points_conceded: int,
    is_winner: bool,
    *,
    now: datetime | None = None,
) -> PlayerProfile:
    delta = rating_delta(points_scored, points_conceded, is_winner)
    return _updated(
        profile,
        now,
        singles_rating=apply_delta(profile.singles_rating, delta),
        singles_matches_played=profile.singles_matches_played + 1,
        singles_matches_won=profile.singles_matches_won + (1 if is_winner else 0),
        singles_points_scored=profile.singles_points_scored + points_scored,
        singles_points_conceded=profile.singles_points_conceded + points_conceded,
    )


def apply_doubles_result(
    profile: PlayerProfile,
    team_score: int,
    opponent_score: int,
    is_winner: bool,
    partner_id: str,
    *,
    played_at: datetime | None = None,
    now: datetime | None = None,
) -> PlayerProfile:
    """Apply a doubles result to one teammate's profile.

    The individual doubles rating moves by the half-share delta
    (``doubles_rating_delta``) while the partner-specific ``team_rating`` moves
    by the delta of the full team score. Point counters, both individual and
    per-partner, are credited with the full team score.
    """
    delta = doubles_rating_delta(team_score, opponent_score, is_winner)

    partner = profile.team_partners.get(partner_id) or TeamPartnerStats()
    team_delta = rating_delta(team_score, opponent_score, is_winner)
    partner = partner.model_copy(
        update={
            "matches_played": partner.matches_played + 1,
            "matches_won": partner.matches_won + (1 if is_winner else 0),
            "team_rating": apply_delta(partner.team_rating, team_delta),
            "points_scored": partner.points_scored + team_score,
            "points_conceded": partner.points_conceded + opponent_score,
            "last_played": played_at or now or utcnow(),
        }
    )
    team_partners = dict(profile.team_partners)
    team_partners[partner_id] = partner

    return _updated(
        profile,
        now,
        doubles_rating=apply_delta(profile.doubles_rating, delta),
        doubles_matches_played=profile.doubles_matches_played + 1,
        doubles_matches_won=profile.doubles_matches_won + (1 if is_winner else 0),
        doubles_points_scored=profile.doubles_points_scored + team_score,
        doubles_points_conceded=profile.doubles_points_conceded + opponent_score,
        team_partners=team_partners,
    )


def _reverted_rating(rating: int, matches_played: int, delta: int) -> int:
    # Only match in the category: back to the starting rating.
    if matches_played <= 1:
        return INITIAL_RATING
    return apply_delta(rating, -delta)


def revert_singles_result(
    profile: PlayerProfile,
    points_scored: int,
    points_conceded: int,
    is_winner: bool,
    *,
    applied_delta: int | None = None,
    now: datetime | None = None,
) -> PlayerProfile:
    """Undo one singles result.

    ``applied_delta`` is the change recorded when the match was applied. When
    it is missing the forward delta is recomputed from the scores, which can
    drift from the true pre-match rating if the floor clipped the original
    change.
    """
    if applied_delta is None:
        applied_delta = rating_delta(points_scored, points_conceded, is_winner)
    return _updated(
        profile,
        now,
        singles_rating=_reverted_rating(
            profile.singles_rating, profile.singles_matches_played, applied_delta
        ),
        singles_matches_played=_floor_zero(profile.singles_matches_played - 1),
        singles_matches_won=_floor_zero(
            profile.singles_matches_won - (1 if is_winner else 0)
        ),
        singles_points_scored=_floor_zero(profile.singles_points_scored - points_scored),
        singles_points_conceded=_floor_zero(
            profile.singles_points_conceded - points_conceded
        ),
    )


def revert_doubles_result(
    profile: PlayerProfile,
    team_score: int,
    opponent_score: int,
    is_winner: bool,
    partner_id: str,
    *,
    applied_delta: int | None = None,
    applied_team_delta: int | None = None,
    last_played: datetime | None = None,
    now: datetime | None = None,
) -> PlayerProfile:
    """Undo one doubles result for one teammate.

    ``last_played`` is when the pairing last played together among the
    matches that remain; it replaces the partner entry's timestamp when the
    entry survives. Left as ``None`` the old timestamp is kept.
    """
    if applied_delta is None:
        applied_delta = doubles_rating_delta(team_score, opponent_score, is_winner)

    team_partners = dict(profile.team_partners)
    partner = team_partners.get(partner_id)
    if partner is not None:
        if partner.matches_played <= 1:
            # Last shared match gone: the pairing no longer exists.
            del team_partners[partner_id]
        else:
            if applied_team_delta is None:
                applied_team_delta = rating_delta(team_score, opponent_score, is_winner)
            team_partners[partner_id] = partner.model_copy(
                update={
                    "matches_played": partner.matches_played - 1,
                    "matches_won": _floor_zero(
                        partner.matches_won - (1 if is_winner else 0)
                    ),
                    "team_rating": apply_delta(partner.team_rating, -applied_team_delta),
                    "points_scored": _floor_zero(partner.points_scored - team_score),
                    "points_conceded": _floor_zero(
                        partner.points_conceded - opponent_score
                    ),
                    "last_played": last_played or partner.last_played,
                }
            )

    return _updated(
        profile,
        now,
        doubles_rating=_reverted_rating(
            profile.doubles_rating, profile.doubles_matches_played, applied_delta
        ),
        doubles_matches_played=_floor_zero(profile.doubles_matches_played - 1),
        doubles_matches_won=_floor_zero(
            profile.doubles_matches_won - (1 if is_winner else 0)
        ),
        doubles_points_scored=_floor_zero(profile.doubles_points_scored - team_score),
        doubles_points_conceded=_floor_zero(
            profile.doubles_points_conceded - opponent_score
        ),
        team_partners=team_partners,
    )


def singles_win_rate(profile: PlayerProfile) -> float:
    return win_rate(profile.singles_matches_won, profile.singles_matches_played)


def doubles_win_rate(profile: PlayerProfile) -> float:
    return win_rate(profile.doubles_matches_won, profile.doubles_matches_played)


def win_rate(won: int, played: int) -> float:
    """Percentage of matches won, rounded to one decimal; 0.0 with no matches."""
    if played <= 0:
        return 0.0
    return round(won / played * 100, 1)
