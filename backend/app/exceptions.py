from fastapi import HTTPException
from pydantic import BaseModel
from typing import Optional


class ProblemDetail(BaseModel):
    """RFC 7807 compliant error response."""

    type: str = "about:blank"
    title: str
    detail: Optional[str] = None
    status: int
    instance: Optional[str] = None
    code: str


class DomainException(Exception):
    """Base class for domain-specific exceptions."""

    def __init__(
        self,
        status_code: int,
        title: str,
        *,
        code: str,
        detail: str | None = None,
        type_: str = "about:blank",
    ) -> None:
        super().__init__(detail or title)
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type = type_
        self.code = code


class NotFoundError(DomainException):
    """A referenced profile or match does not exist."""


class PlayerNotFound(NotFoundError):
    def __init__(self, player_id: str) -> None:
        super().__init__(
            status_code=404,
            title="Player not found",
            detail=f"player '{player_id}' not found",
            code="player_not_found",
        )
        self.player_id = player_id


class MatchNotFound(NotFoundError):
    def __init__(self, match_id: str) -> None:
        super().__init__(
            status_code=404,
            title="Match not found",
            detail=f"match '{match_id}' not found",
            code="match_not_found",
        )
        self.match_id = match_id


class PlayerAlreadyExists(DomainException):
    def __init__(self, username: str) -> None:
        super().__init__(
            status_code=400,
            title="Player exists",
            detail=f"username '{username}' already exists",
            code="player_exists",
        )


class PlayerInUse(DomainException):
    def __init__(self, player_id: str) -> None:
        super().__init__(
            status_code=409,
            title="Player has match history",
            detail=f"player '{player_id}' is referenced by recorded matches",
            code="player_in_use",
        )


class ConcurrentUpdateError(DomainException):
    def __init__(self, attempts: int) -> None:
        super().__init__(
            status_code=409,
            title="Profile update conflict",
            detail=f"profiles changed concurrently; gave up after {attempts} attempts",
            code="profile_conflict",
        )


def http_problem(
    status_code: int,
    detail: str,
    code: str,
    *,
    headers: Optional[dict[str, str]] = None,
) -> HTTPException:
    """Create an HTTPException with an attached problem code."""

    exc = HTTPException(status_code=status_code, detail=detail, headers=headers)
    setattr(exc, "code", code)
    return exc
