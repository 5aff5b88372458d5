import logging
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm.exc import StaleDataError

from app import db
from app.documents import DoublesMatch, SinglesMatch, new_profile
from app.exceptions import (
    ConcurrentUpdateError,
    MatchNotFound,
    PlayerAlreadyExists,
    PlayerInUse,
    PlayerNotFound,
)
from app.services import submission
from app.services.summary import ExternalServiceError
from app.services.validation import ValidationError
from app.stores import MatchStore, ProfileStore


def _session():
    db.get_engine()
    return db.AsyncSessionLocal()


async def _seed(*pids: str) -> None:
    async with _session() as session:
        store = ProfileStore(session)
        for pid in pids:
            await store.add(new_profile(pid, f"user-{pid}"))
        await session.commit()


async def _profile(pid: str):
    async with _session() as session:
        return await ProfileStore(session).get(pid)


class StaticSummary:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.requests = []

    async def generate(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.text


class TransactionSpy(StaticSummary):
    """Records whether the session held a transaction during each request."""

    def __init__(self, session):
        super().__init__(text="ok")
        self.session = session
        self.in_transaction = []

    async def generate(self, request):
        self.in_transaction.append(self.session.in_transaction())
        return await super().generate(request)


@pytest.mark.anyio
async def test_singles_end_to_end_and_delete_restores():
    await _seed("a", "b")
    async with _session() as session:
        match = await submission.record_singles_match(
            session,
            player1_id="a",
            player2_id="b",
            player1_score=21,
            player2_score=15,
            created_by="user-1",
        )
    assert isinstance(match, SinglesMatch)
    assert match.winner_id == "a"
    assert match.created_by == "user-1"
    assert match.rating_changes == {"a": 85, "b": -60}

    a, b = await _profile("a"), await _profile("b")
    assert (a.singles_matches_played, a.singles_matches_won) == (1, 1)
    assert a.singles_rating == 1285
    assert b.singles_rating == 1140

    async with _session() as session:
        report = await submission.delete_match(session, match.id)
    assert report.consistent
    assert report.reverted_player_ids == ["a", "b"]

    a, b = await _profile("a"), await _profile("b")
    assert a.singles_matches_played == b.singles_matches_played == 0
    assert a.singles_rating == b.singles_rating == 1200
    async with _session() as session:
        assert await MatchStore(session).count() == 0


@pytest.mark.anyio
async def test_exact_undo_of_non_latest_match():
    await _seed("a", "b")
    ids = []
    async with _session() as session:
        for s1, s2 in [(11, 2), (11, 9), (3, 11)]:
            match = await submission.record_singles_match(
                session,
                player1_id="a",
                player2_id="b",
                player1_score=s1,
                player2_score=s2,
                created_by=None,
            )
            ids.append(match.id)
    async with _session() as session:
        second = await MatchStore(session).get(ids[1])
    before_second = await _profile("a")

    async with _session() as session:
        await submission.delete_match(session, ids[1])
    after = await _profile("a")
    assert after.singles_rating == before_second.singles_rating - second.rating_changes["a"]
    assert after.singles_matches_played == 2


@pytest.mark.anyio
async def test_doubles_updates_all_four_symmetrically():
    await _seed("a", "b", "c", "d")
    played = datetime(2024, 6, 1, 18, 30, tzinfo=timezone.utc)
    async with _session() as session:
        match = await submission.record_doubles_match(
            session,
            team1=("a", "b"),
            team2=("c", "d"),
            team1_score=21,
            team2_score=15,
            created_by="user-1",
            played_at=played,
        )
    assert isinstance(match, DoublesMatch)
    assert match.winner_team == "team1"
    assert match.rating_changes == {"a": 55, "b": 55, "c": -30, "d": -30}
    assert match.team_rating_changes == {"a": 85, "b": 85, "c": -60, "d": -60}

    a, b, c, d = [await _profile(pid) for pid in "abcd"]
    assert a.doubles_rating == 1255
    assert c.doubles_rating == 1170
    assert a.team_partners["b"].matches_played == b.team_partners["a"].matches_played == 1
    assert c.team_partners["d"].team_rating == d.team_partners["c"].team_rating == 1140
    assert a.team_partners["b"].last_played == played
    assert a.doubles_points_scored == 21

    async with _session() as session:
        await submission.delete_match(session, match.id)
    a, c = await _profile("a"), await _profile("c")
    assert a.team_partners == {}
    assert a.doubles_rating == c.doubles_rating == 1200


@pytest.mark.anyio
async def test_validation_happens_before_any_write():
    await _seed("a", "b")
    async with _session() as session:
        with pytest.raises(ValidationError, match="tie"):
            await submission.record_singles_match(
                session,
                player1_id="a",
                player2_id="b",
                player1_score=11,
                player2_score=11,
                created_by=None,
            )
        with pytest.raises(ValidationError, match="different players"):
            await submission.record_doubles_match(
                session,
                team1=("a", "b"),
                team2=("b", "c"),
                team1_score=11,
                team2_score=5,
                created_by=None,
            )
        assert await MatchStore(session).count() == 0


@pytest.mark.anyio
async def test_unknown_player_leaves_nothing_behind():
    await _seed("a")
    async with _session() as session:
        with pytest.raises(PlayerNotFound):
            await submission.record_singles_match(
                session,
                player1_id="a",
                player2_id="ghost",
                player1_score=11,
                player2_score=4,
                created_by=None,
            )
    a = await _profile("a")
    assert a.singles_matches_played == 0
    async with _session() as session:
        assert await MatchStore(session).count() == 0


@pytest.mark.anyio
async def test_summary_is_stored_and_failures_are_tolerated(caplog):
    await _seed("a", "b")
    good = StaticSummary(text="What a rally!")
    async with _session() as session:
        match = await submission.record_singles_match(
            session,
            player1_id="a",
            player2_id="b",
            player1_score=5,
            player2_score=11,
            created_by=None,
            summary_generator=good,
            commentator_name="Siddhu",
        )
    assert match.match_summary == "What a rally!"
    request = good.requests[0]
    assert request.side1 == ("user-a",)
    assert request.winners == ("user-b",)
    assert request.commentator_name == "Siddhu"

    broken = StaticSummary(error=ExternalServiceError("down"))
    with caplog.at_level(logging.WARNING):
        async with _session() as session:
            match = await submission.record_singles_match(
                session,
                player1_id="a",
                player2_id="b",
                player1_score=11,
                player2_score=5,
                created_by=None,
                summary_generator=broken,
            )
    assert match.match_summary is None
    assert "Match summary unavailable" in caplog.text


@pytest.mark.anyio
async def test_conflicts_are_retried_then_reported(monkeypatch, caplog):
    await _seed("a", "b")
    monkeypatch.setenv("PROFILE_WRITE_RETRIES", "2")
    calls = {"n": 0}

    original_put = ProfileStore.put

    async def flaky_put(self, profile):
        calls["n"] += 1
        raise StaleDataError("profile row changed")

    monkeypatch.setattr(ProfileStore, "put", flaky_put)
    with caplog.at_level(logging.WARNING):
        async with _session() as session:
            with pytest.raises(ConcurrentUpdateError):
                await submission.record_singles_match(
                    session,
                    player1_id="a",
                    player2_id="b",
                    player1_score=11,
                    player2_score=5,
                    created_by=None,
                )
    assert calls["n"] == 2
    assert "retrying" in caplog.text
    assert "Gave up" in caplog.text

    # One conflict, then success.
    calls["n"] = 0

    async def put_once_stale(self, profile):
        calls["n"] += 1
        if calls["n"] == 1:
            raise StaleDataError("profile row changed")
        await original_put(self, profile)

    monkeypatch.setattr(ProfileStore, "put", put_once_stale)
    async with _session() as session:
        match = await submission.record_singles_match(
            session,
            player1_id="a",
            player2_id="b",
            player1_score=11,
            player2_score=5,
            created_by=None,
        )
    a = await _profile("a")
    assert a.singles_matches_played == 1
    async with _session() as session:
        assert [m.id async for m in MatchStore(session).query_all()] == [match.id]


async def _record_21_15(session, summary_generator=None):
    return await submission.record_singles_match(
        session,
        player1_id="a",
        player2_id="b",
        player1_score=21,
        player2_score=15,
        created_by=None,
        summary_generator=summary_generator,
    )


@pytest.mark.anyio
async def test_stale_cached_profiles_are_not_written_back(caplog):
    await _seed("a", "b")
    stale = _session()
    # Load version 1 of both rows into this session's identity map
    await ProfileStore(stale).get_many(["a", "b"])

    async with _session() as other:
        await _record_21_15(other)

    with caplog.at_level(logging.WARNING):
        await _record_21_15(stale)
    await stale.close()

    a = await _profile("a")
    assert a.singles_matches_played == 2
    assert a.singles_rating == 1370
    assert "Profile conflict while recording singles match" in caplog.text
    async with _session() as session:
        assert await MatchStore(session).count() == 2


@pytest.mark.anyio
async def test_summary_path_rereads_profiles_after_concurrent_write():
    await _seed("a", "b")
    stale = _session()
    await ProfileStore(stale).get_many(["a", "b"])

    async with _session() as other:
        await _record_21_15(other)

    match = await _record_21_15(stale, StaticSummary(text="Again!"))
    await stale.close()

    assert match.match_summary == "Again!"
    assert match.rating_changes == {"a": 85, "b": -60}
    a = await _profile("a")
    assert a.singles_matches_played == 2
    assert a.singles_rating == 1370


@pytest.mark.anyio
async def test_summary_is_requested_outside_a_transaction():
    await _seed("a", "b", "c", "d")

    async with _session() as session:
        spy = TransactionSpy(session)
        await _record_21_15(session, spy)
        await submission.record_doubles_match(
            session,
            team1=("a", "b"),
            team2=("c", "d"),
            team1_score=11,
            team2_score=7,
            created_by=None,
            summary_generator=spy,
        )
    assert spy.in_transaction == [False, False]


@pytest.mark.anyio
async def test_naive_played_at_is_a_validation_error():
    await _seed("a", "b")
    async with _session() as session:
        with pytest.raises(ValidationError, match="timezone offset"):
            await submission.record_singles_match(
                session,
                player1_id="a",
                player2_id="b",
                player1_score=11,
                player2_score=5,
                created_by=None,
                played_at=datetime(2024, 6, 1, 18, 30),
            )
        assert await MatchStore(session).count() == 0
    assert (await _profile("a")).singles_matches_played == 0


@pytest.mark.anyio
async def test_delete_doubles_rewinds_partner_last_played():
    await _seed("a", "b", "c", "d")
    first = datetime(2024, 6, 1, 18, 0, tzinfo=timezone.utc)
    second = datetime(2024, 6, 8, 18, 0, tzinfo=timezone.utc)
    ids = []
    async with _session() as session:
        for when in (first, second):
            match = await submission.record_doubles_match(
                session,
                team1=("a", "b"),
                team2=("c", "d"),
                team1_score=11,
                team2_score=9,
                created_by=None,
                played_at=when,
            )
            ids.append(match.id)
    assert (await _profile("a")).team_partners["b"].last_played == second

    async with _session() as session:
        await submission.delete_match(session, ids[1])

    a, d = await _profile("a"), await _profile("d")
    assert a.team_partners["b"].matches_played == 1
    assert a.team_partners["b"].last_played == first
    assert d.team_partners["c"].last_played == first


@pytest.mark.anyio
async def test_delete_with_missing_profile_is_reported(caplog):
    await _seed("a", "b")
    async with _session() as session:
        match = await submission.record_singles_match(
            session,
            player1_id="a",
            player2_id="b",
            player1_score=11,
            player2_score=5,
            created_by=None,
        )
    async with _session() as session:
        await ProfileStore(session).delete("b")
        await session.commit()

    with caplog.at_level(logging.ERROR):
        async with _session() as session:
            report = await submission.delete_match(session, match.id)
    assert report.missing_player_ids == ["b"]
    assert report.reverted_player_ids == ["a"]
    assert not report.consistent
    assert "could not revert" in caplog.text
    assert (await _profile("a")).singles_matches_played == 0


@pytest.mark.anyio
async def test_delete_unknown_match():
    async with _session() as session:
        with pytest.raises(MatchNotFound):
            await submission.delete_match(session, "nope")


@pytest.mark.anyio
async def test_register_and_delete_player():
    async with _session() as session:
        profile = await submission.register_player(session, "  Alice ", "Ally")
    assert profile.username == "Alice"
    assert profile.displayName == "Ally"
    assert profile.overall_rating == 1200

    async with _session() as session:
        with pytest.raises(PlayerAlreadyExists):
            await submission.register_player(session, "alice")

    await _seed("b")
    async with _session() as session:
        await submission.record_singles_match(
            session,
            player1_id=profile.id,
            player2_id="b",
            player1_score=11,
            player2_score=5,
            created_by=None,
        )
    async with _session() as session:
        with pytest.raises(PlayerInUse):
            await submission.delete_player(session, "b")
        with pytest.raises(PlayerNotFound):
            await submission.delete_player(session, "nobody")

    await _seed("c")
    async with _session() as session:
        await submission.delete_player(session, "c")
        assert await ProfileStore(session).find("c") is None
