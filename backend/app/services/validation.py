from typing import TYPE_CHECKING, Any, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from ..documents import DoublesMatch, SinglesMatch


class ValidationError(Exception):
    """Raised when a submitted match violates a match-record invariant."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


def validate_score(value: Any, label: str, *, max_points: Optional[int] = None) -> int:
    # Reject booleans explicitly (bool is a subclass of int in Python)
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be an integer (not a boolean).")
    if not isinstance(value, int):
        try:
            value = int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{label} must be an integer.")
    if value < 0:
        raise ValidationError(f"{label} must be >= 0.")
    if max_points is not None and value > max_points:
        raise ValidationError(f"{label} must be <= {max_points}.")
    return value


def validate_participants(player_ids: Sequence[Optional[str]]) -> list[str]:
    """Require every slot to be selected and every player to be distinct."""

    normalized: list[str] = []
    for index, pid in enumerate(player_ids, start=1):
        if not isinstance(pid, str) or not pid.strip():
            raise ValidationError(f"Player #{index} must be selected.")
        normalized.append(pid.strip())
    if len(set(normalized)) != len(normalized):
        raise ValidationError("Please select different players.")
    return normalized


def validate_scores_differ(score_a: int, score_b: int) -> None:
    if score_a == score_b:
        raise ValidationError("Match cannot end in a tie.")


def validate_singles_match(match: "SinglesMatch") -> None:
    validate_participants([match.player1_id, match.player2_id])
    p1 = validate_score(match.player1_score, "Player 1 score")
    p2 = validate_score(match.player2_score, "Player 2 score")
    validate_scores_differ(p1, p2)
    expected = match.player1_id if p1 > p2 else match.player2_id
    if match.winner_id != expected:
        raise ValidationError("winner_id must be the player with the higher score.")


def validate_doubles_match(match: "DoublesMatch") -> None:
    validate_participants(match.participant_ids)
    t1 = validate_score(match.team1_score, "Team 1 score")
    t2 = validate_score(match.team2_score, "Team 2 score")
    validate_scores_differ(t1, t2)
    expected = "team1" if t1 > t2 else "team2"
    if match.winner_team != expected:
        raise ValidationError("winner_team must be the team with the higher score.")


def validate_match_record(match: "SinglesMatch | DoublesMatch") -> None:
    if match.match_type == "singles":
        validate_singles_match(match)  # type: ignore[arg-type]
    elif match.match_type == "doubles":
        validate_doubles_match(match)  # type: ignore[arg-type]
    else:  # pragma: no cover - closed union
        raise ValidationError(f"Unknown match type '{match.match_type}'.")
