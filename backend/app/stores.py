"""Document stores for profiles and matches backed by an ``AsyncSession``.

The stores only stage changes on the session; callers own the transaction
and decide when to commit or roll back.
"""

from __future__ import annotations

from typing import AsyncIterator, Callable, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .documents import DoublesMatch, PlayerProfile, SinglesMatch, parse_match_document
from .exceptions import MatchNotFound, PlayerAlreadyExists, PlayerNotFound
from .models import MatchDocument, ProfileDocument
from .time_utils import to_naive_utc

MatchRecordT = SinglesMatch | DoublesMatch

DEFAULT_BATCH_SIZE = 100


def _profile_from_row(row: ProfileDocument) -> PlayerProfile:
    return PlayerProfile.model_validate(row.document)


def _match_from_row(row: MatchDocument) -> MatchRecordT:
    return parse_match_document(row.document)


class ProfileStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find(self, profile_id: str) -> Optional[PlayerProfile]:
        row = await self.session.get(ProfileDocument, profile_id)
        return _profile_from_row(row) if row is not None else None

    async def get(self, profile_id: str) -> PlayerProfile:
        profile = await self.find(profile_id)
        if profile is None:
            raise PlayerNotFound(profile_id)
        return profile

    async def get_many(self, profile_ids: Iterable[str]) -> dict[str, PlayerProfile]:
        """Load several profiles, silently leaving out ids that do not exist."""
        ids = {pid for pid in profile_ids if pid}
        if not ids:
            return {}
        rows = (
            await self.session.execute(
                select(ProfileDocument).where(ProfileDocument.id.in_(ids))
            )
        ).scalars().all()
        return {row.id: _profile_from_row(row) for row in rows}

    async def username_taken(self, username: str) -> bool:
        existing = (
            await self.session.execute(
                select(ProfileDocument.id).where(
                    func.lower(ProfileDocument.username) == username.lower()
                )
            )
        ).scalar_one_or_none()
        return existing is not None

    async def add(self, profile: PlayerProfile) -> None:
        if await self.username_taken(profile.username):
            raise PlayerAlreadyExists(profile.username)
        self.session.add(
            ProfileDocument(
                id=profile.id,
                username=profile.username,
                document=profile.to_document(),
            )
        )

    async def put(self, profile: PlayerProfile) -> None:
        """Replace a stored profile document.

        The row is taken from the session identity map when it was read in the
        same transaction, so the version check covers the original read.
        """
        row = await self.session.get(ProfileDocument, profile.id)
        if row is None:
            raise PlayerNotFound(profile.id)
        row.username = profile.username
        row.document = profile.to_document()

    async def query(
        self, predicate: Optional[Callable[[PlayerProfile], bool]] = None
    ) -> list[PlayerProfile]:
        rows = (
            await self.session.execute(
                select(ProfileDocument).order_by(func.lower(ProfileDocument.username))
            )
        ).scalars().all()
        profiles = [_profile_from_row(row) for row in rows]
        if predicate is None:
            return profiles
        return [p for p in profiles if predicate(p)]

    async def delete(self, profile_id: str) -> None:
        row = await self.session.get(ProfileDocument, profile_id)
        if row is None:
            raise PlayerNotFound(profile_id)
        await self.session.delete(row)


class MatchStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, match: MatchRecordT) -> None:
        self.session.add(
            MatchDocument(
                id=match.id,
                match_type=match.match_type,
                played_at=to_naive_utc(match.played_at),
                created_by=match.created_by,
                document=match.to_document(),
            )
        )

    async def get(self, match_id: str) -> MatchRecordT:
        row = await self.session.get(MatchDocument, match_id)
        if row is None:
            raise MatchNotFound(match_id)
        return _match_from_row(row)

    async def delete(self, match_id: str) -> None:
        row = await self.session.get(MatchDocument, match_id)
        if row is None:
            raise MatchNotFound(match_id)
        await self.session.delete(row)

    def _ordered(self, descending: bool):
        if descending:
            return select(MatchDocument).order_by(
                MatchDocument.played_at.desc(), MatchDocument.id.desc()
            )
        return select(MatchDocument).order_by(
            MatchDocument.played_at.asc(), MatchDocument.id.asc()
        )

    async def page(
        self, *, limit: int, offset: int = 0, descending: bool = True
    ) -> list[MatchRecordT]:
        rows = (
            await self.session.execute(
                self._ordered(descending).offset(offset).limit(limit)
            )
        ).scalars().all()
        return [_match_from_row(row) for row in rows]

    async def query_all(
        self, *, descending: bool = True, batch_size: int = DEFAULT_BATCH_SIZE
    ) -> AsyncIterator[MatchRecordT]:
        """Yield every match, most recent first by default.

        Rows are fetched ``batch_size`` at a time; each call starts a fresh
        scan from the beginning.
        """
        offset = 0
        while True:
            batch = await self.page(
                limit=batch_size, offset=offset, descending=descending
            )
            for match in batch:
                yield match
            if len(batch) < batch_size:
                return
            offset += batch_size

    async def count(self) -> int:
        return int(
            (await self.session.execute(select(func.count(MatchDocument.id)))).scalar_one()
        )
