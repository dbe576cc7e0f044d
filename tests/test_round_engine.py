"""
Round engine tests.

Time is driven by explicit ticks (autotick=False) and a fake wall clock,
so every transition happens at a known point.
"""

import asyncio
import logging
import threading
import time

import pytest

from core.exceptions import (
    DuplicateVoteError,
    MissingActiveRoundError,
    RoundNotFound,
    TransientStorageError,
    ValidationError,
)
from models import Category, RoundPhase
from tests.conftest import ScriptedRandom


def _drain_queue(queue):
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


# =============================================================================
# Lifecycle scenarios
# =============================================================================

class TestRoundLifecycle:

    @pytest.mark.asyncio
    async def test_scenario_a_winner_from_chosen_category(self, engine, repository):
        """Round 1: X votes red, Y votes black, red is drawn, X wins, round 2 opens."""
        assert engine.active_round.round_number == 1
        assert engine.active_round.phase == RoundPhase.VOTING
        assert engine.remaining_time() == 30

        await engine.cast_vote("X", "red")
        await engine.cast_vote("Y", "black")

        await engine.tick(30)
        revealing = repository.load_round(1)
        assert revealing.phase == RoundPhase.REVEALING
        assert revealing.chosen_category == Category.RED
        assert revealing.winner is None
        assert engine.remaining_time() == 5

        await engine.tick(5)
        completed = repository.load_round(1)
        assert completed.phase == RoundPhase.COMPLETED
        assert completed.winner == "X"
        assert completed.ended_at is not None

        assert engine.active_round.round_number == 2
        assert engine.active_round.phase == RoundPhase.VOTING
        assert engine.remaining_time() == 30
        assert engine.game_state.current_round_number == 2
        assert engine.game_state.total_rounds_completed == 1
        assert engine.game_state.last_winner == "X"

    @pytest.mark.asyncio
    async def test_scenario_b_no_votes_means_no_winner(self, make_engine, repository):
        engine = make_engine(rng=ScriptedRandom((0.9,)))
        await engine.start(autotick=False)
        try:
            await engine.tick(35)

            completed = repository.load_round(1)
            assert completed.chosen_category == Category.BLACK
            assert repository.list_votes(1) == []
            assert completed.winner is None
            assert engine.game_state.last_winner is None
            assert engine.active_round.round_number == 2
        finally:
            await engine.shutdown()

    @pytest.mark.asyncio
    async def test_scenario_c_second_vote_is_duplicate(self, engine):
        await engine.cast_vote("X", "red")

        with pytest.raises(DuplicateVoteError) as exc_info:
            await engine.cast_vote("X", "black")

        assert exc_info.value.previous_vote == Category.RED
        assert engine.get_snapshot().round_data.votes == {Category.RED: 1, Category.BLACK: 0}

    @pytest.mark.asyncio
    async def test_scenario_d_vote_while_revealing_is_rejected_silently(self, engine, broadcaster):
        await engine.force_advance()
        queue = broadcaster.subscribe()

        with pytest.raises(ValidationError):
            await engine.cast_vote("X", "red")

        assert queue.empty()
        assert engine.active_round.total_votes == 0

    @pytest.mark.asyncio
    async def test_winner_never_from_losing_category(self, engine, repository):
        await engine.cast_vote("B1", "black")
        await engine.cast_vote("B2", "black")

        # red drawn, nobody voted red
        await engine.tick(35)

        assert repository.load_round(1).winner is None

    @pytest.mark.asyncio
    async def test_round_numbers_are_contiguous(self, engine, repository):
        for _ in range(3):
            await engine.force_advance()
            await engine.force_advance()

        completed = [r.round_number for r in repository.list_completed_rounds()]
        assert completed == [3, 2, 1]
        assert engine.active_round.round_number == 4
        assert repository.load_latest_round_number() == 4

    @pytest.mark.asyncio
    async def test_snapshot_order_follows_lifecycle(self, engine, broadcaster):
        queue = broadcaster.subscribe()

        await engine.cast_vote("X", "red")
        await engine.force_advance()
        await engine.force_advance()

        snapshots = _drain_queue(queue)
        statuses = [(s.round_data.round_number, s.round_data.status) for s in snapshots]
        assert statuses == [
            (1, RoundPhase.VOTING),
            (1, RoundPhase.REVEALING),
            (1, RoundPhase.COMPLETED),
            (2, RoundPhase.VOTING),
        ]
        assert snapshots[1].round_data.winning_color == Category.RED
        assert snapshots[1].round_data.winner is None
        assert snapshots[2].round_data.winner == "X"
        sequences = [s.sequence for s in snapshots]
        assert sequences == sorted(sequences)


# =============================================================================
# Countdown
# =============================================================================

class TestCountdown:

    @pytest.mark.asyncio
    async def test_remaining_time_never_increases_within_phase(self, engine):
        seen = []
        for _ in range(30):
            await engine.tick()
            seen.append(engine.remaining_time())

        # 最後一個 tick 觸發 VOTING -> REVEALING，倒數重設
        voting = seen[:-1]
        assert voting == sorted(voting, reverse=True)
        assert all(value >= 0 for value in seen)
        assert voting[-1] == 1
        assert engine.active_round.phase == RoundPhase.REVEALING

    @pytest.mark.asyncio
    async def test_heartbeat_every_five_seconds(self, engine, broadcaster):
        queue = broadcaster.subscribe()

        await engine.tick(4)
        assert queue.empty()

        await engine.tick(1)
        snapshots = _drain_queue(queue)
        assert len(snapshots) == 1
        assert snapshots[0].game_state.time_left == 25

    @pytest.mark.asyncio
    async def test_no_heartbeat_while_transition_is_retried(self, engine, repository, broadcaster, monkeypatch):
        original = repository.save_round
        failures = {"left": 3}

        def flaky_save(record):
            if record.phase == RoundPhase.REVEALING and failures["left"]:
                failures["left"] -= 1
                raise TransientStorageError("database is locked")
            return original(record)

        monkeypatch.setattr(repository, "save_round", flaky_save)

        await engine.tick(30)
        queue = broadcaster.subscribe()

        # 倒數停在 0，重試中的 tick 不算心跳
        await engine.tick(2)
        assert engine.remaining_time() == 0
        assert queue.empty()

        await engine.tick(1)
        snapshots = _drain_queue(queue)
        assert [s.round_data.status for s in snapshots] == [RoundPhase.REVEALING]

    @pytest.mark.asyncio
    async def test_status_snapshot_tracks_every_tick(self, engine):
        await engine.tick(3)
        assert engine.get_snapshot().game_state.time_left == 27


# =============================================================================
# Votes
# =============================================================================

class TestVotes:

    @pytest.mark.asyncio
    async def test_vote_result_carries_tally_and_time(self, engine):
        await engine.tick(2)
        result = await engine.cast_vote("X", "black")

        assert result.accepted
        assert result.round_number == 1
        assert result.tally == {Category.RED: 0, Category.BLACK: 1}
        assert result.total_voters == 1
        assert result.remaining_time == 28

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_votes_only_one_wins(self, engine):
        results = await asyncio.gather(
            engine.cast_vote("X", "red"),
            engine.cast_vote("X", "black"),
            return_exceptions=True,
        )

        accepted = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, DuplicateVoteError)]
        assert len(accepted) == 1
        assert len(rejected) == 1
        assert engine.active_round.total_votes == 1

    @pytest.mark.asyncio
    async def test_ineligible_voter_rejected_without_broadcast(self, engine, oracle, broadcaster):
        oracle.denied.add("poor-wallet")
        queue = broadcaster.subscribe()

        with pytest.raises(ValidationError, match="not verified"):
            await engine.cast_vote("poor-wallet", "red")

        assert queue.empty()
        assert oracle.calls == ["poor-wallet"]

    @pytest.mark.asyncio
    async def test_invalid_color_rejected_before_oracle(self, engine, oracle):
        with pytest.raises(ValidationError):
            await engine.cast_vote("X", "green")
        assert oracle.calls == []

    @pytest.mark.asyncio
    async def test_unstored_vote_is_not_counted(self, engine, repository, monkeypatch):
        def broken_append(record):
            raise TransientStorageError("database is locked")

        monkeypatch.setattr(repository, "append_vote", broken_append)

        with pytest.raises(TransientStorageError):
            await engine.cast_vote("X", "red")

        assert engine.active_round.total_votes == 0

        monkeypatch.undo()
        result = await engine.cast_vote("X", "red")
        assert result.total_voters == 1

    @pytest.mark.asyncio
    async def test_accepted_vote_updates_stored_tally(self, engine, repository):
        await engine.cast_vote("X", "black")

        assert repository.load_round(1).tally == {Category.RED: 0, Category.BLACK: 1}

    @pytest.mark.asyncio
    async def test_slow_vote_write_does_not_stall_timer_or_readers(self, engine, repository, monkeypatch):
        original = repository.append_vote

        def slow_append(record):
            time.sleep(0.5)
            original(record)

        monkeypatch.setattr(repository, "append_vote", slow_append)

        vote = asyncio.create_task(engine.cast_vote("slow-voter", "red"))
        ticks = 0
        reads = 0
        while not vote.done():
            if ticks < 10:
                await engine.tick()
                ticks += 1
            assert engine.get_snapshot().game_state.time_left == engine.remaining_time()
            reads += 1
            await asyncio.sleep(0.01)

        result = await vote
        assert ticks == 10
        assert reads >= 10
        assert result.remaining_time == 20
        assert result.tally == {Category.RED: 1, Category.BLACK: 0}

    @pytest.mark.asyncio
    async def test_vote_stored_after_voting_closed_is_discarded(self, engine, repository, monkeypatch):
        original = repository.append_vote
        release = threading.Event()

        def gated_append(record):
            release.wait(timeout=5)
            original(record)

        monkeypatch.setattr(repository, "append_vote", gated_append)

        vote = asyncio.create_task(engine.cast_vote("late-voter", "red"))
        await asyncio.sleep(0.05)
        assert not vote.done()

        await engine.force_advance()
        release.set()

        with pytest.raises(ValidationError, match="Voting is not active"):
            await vote

        assert repository.find_vote("late-voter", 1) is None
        assert engine.active_round.total_votes == 0
        assert repository.load_round(1).tally[Category.RED] == 0


# =============================================================================
# Timers and forced advance
# =============================================================================

class TestTimers:

    @pytest.mark.asyncio
    async def test_stale_timer_is_discarded(self, engine, caplog):
        await engine.force_advance()
        round_before = engine.active_round

        with caplog.at_level(logging.WARNING):
            assert await engine.advance_on_timeout(1, RoundPhase.VOTING) is None
            assert await engine.advance_on_timeout(7, RoundPhase.REVEALING) is None

        assert engine.active_round is round_before
        assert engine.active_round.phase == RoundPhase.REVEALING
        assert "Discarding stale timer" in caplog.text

    @pytest.mark.asyncio
    async def test_force_advance_cancels_voting_countdown(self, engine):
        await engine.tick(3)
        record = await engine.force_advance()

        assert record.phase == RoundPhase.REVEALING
        assert engine.remaining_time() == 5

        # 舊的 VOTING 倒數不會再觸發任何轉換
        await engine.tick(4)
        assert engine.active_round.round_number == 1
        assert engine.active_round.phase == RoundPhase.REVEALING

        await engine.tick(1)
        assert engine.active_round.round_number == 2

    @pytest.mark.asyncio
    async def test_failed_transition_retried_on_next_tick(self, engine, repository, monkeypatch):
        original = repository.save_round
        failures = {"left": 1}

        def flaky_save(record):
            if record.phase == RoundPhase.REVEALING and failures["left"]:
                failures["left"] -= 1
                raise TransientStorageError("database is locked")
            return original(record)

        monkeypatch.setattr(repository, "save_round", flaky_save)

        await engine.tick(30)
        assert engine.active_round.phase == RoundPhase.VOTING
        assert engine.remaining_time() == 0

        await engine.tick(1)
        assert engine.active_round.phase == RoundPhase.REVEALING
        assert repository.load_round(1).phase == RoundPhase.REVEALING

    @pytest.mark.asyncio
    async def test_halts_votes_until_next_round_can_be_created(self, engine, repository, monkeypatch):
        original = repository.save_round
        broken = {"on": True}

        def save_round(record):
            if record.round_number == 2 and broken["on"]:
                raise TransientStorageError("database is locked")
            return original(record)

        monkeypatch.setattr(repository, "save_round", save_round)

        await engine.tick(35)
        assert repository.load_round(1).phase == RoundPhase.COMPLETED
        assert engine.active_round is None

        with pytest.raises(MissingActiveRoundError):
            await engine.cast_vote("X", "red")

        broken["on"] = False
        await engine.tick(1)
        assert engine.active_round.round_number == 2
        result = await engine.cast_vote("X", "red")
        assert result.round_number == 2


# =============================================================================
# Start / restart
# =============================================================================

class TestStartEngine:

    @pytest.mark.asyncio
    async def test_start_engine_is_idempotent(self, engine, repository):
        first = await engine.start_engine()
        second = await engine.start_engine()

        assert first is second
        assert repository.load_latest_round_number() == 1
        assert engine.active_round.phase == RoundPhase.VOTING

    @pytest.mark.asyncio
    async def test_restart_resumes_active_round(self, engine, make_engine, clock):
        await engine.cast_vote("X", "red")
        await engine.shutdown()

        clock.advance(10)
        restarted = make_engine()
        await restarted.start_engine()

        assert restarted.active_round.round_number == 1
        assert restarted.active_round.phase == RoundPhase.VOTING
        assert restarted.remaining_time() == 20
        assert restarted.get_snapshot().round_data.votes[Category.RED] == 1

    @pytest.mark.asyncio
    async def test_restart_replays_missed_transitions(self, engine, make_engine, repository, clock):
        await engine.cast_vote("X", "red")
        await engine.shutdown()

        clock.advance(100)
        restarted = make_engine()
        await restarted.start_engine()

        completed = repository.load_round(1)
        assert completed.phase == RoundPhase.COMPLETED
        assert completed.chosen_category == Category.RED
        assert completed.winner == "X"

        assert restarted.active_round.round_number == 2
        assert restarted.remaining_time() == 30
        assert restarted.game_state.total_rounds_completed == 1
        assert repository.load_game_state().current_round_number == 2

    @pytest.mark.asyncio
    async def test_restart_replays_only_reveal_when_inside_it(self, engine, make_engine, repository, clock):
        await engine.shutdown()

        clock.advance(32)
        restarted = make_engine()
        await restarted.start_engine()

        assert restarted.active_round.round_number == 1
        assert restarted.active_round.phase == RoundPhase.REVEALING
        assert restarted.remaining_time() == 3


# =============================================================================
# Admin operations
# =============================================================================

class TestAdmin:

    @pytest.mark.asyncio
    async def test_set_prize_amount(self, engine, repository):
        record = await engine.set_prize_amount(2.5)

        assert record.prize_amount == 2.5
        assert repository.load_round(1).prize_amount == 2.5
        assert engine.get_snapshot().round_data.prize_amount == 2.5

    @pytest.mark.asyncio
    async def test_set_prize_rejects_non_positive(self, engine):
        with pytest.raises(ValidationError):
            await engine.set_prize_amount(0)

    @pytest.mark.asyncio
    async def test_mark_prize_paid_updates_totals(self, engine, repository):
        await engine.set_prize_amount(3)
        await engine.cast_vote("X", "red")
        await engine.force_advance()
        await engine.force_advance()
        assert engine.game_state.last_prize_amount == 3

        record = await engine.mark_prize_paid(1)

        assert record.prize_paid
        assert engine.game_state.total_prizes_given == 3
        assert repository.load_game_state().total_prizes_given == 3

        with pytest.raises(ValidationError):
            await engine.mark_prize_paid(1)

    @pytest.mark.asyncio
    async def test_mark_paid_requires_winner(self, engine):
        await engine.force_advance()
        await engine.force_advance()

        with pytest.raises(RoundNotFound):
            await engine.mark_prize_paid(1)
        with pytest.raises(RoundNotFound):
            await engine.mark_prize_paid(42)
