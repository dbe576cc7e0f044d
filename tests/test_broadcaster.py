"""Tests for SnapshotBroadcaster fan-out."""

from datetime import datetime, timezone

import pytest

from core.broadcaster import SnapshotBroadcaster
from models import Category, RoundPhase
from schemas import ConfigView, GameSnapshot, GameStateView, RoundView


def _snapshot(sequence: int) -> GameSnapshot:
    return GameSnapshot(
        sequence=sequence,
        game_state=GameStateView(
            current_round=1,
            time_left=30,
            current_phase=RoundPhase.VOTING,
            total_prizes_given=0,
            total_rounds_played=0,
            last_prize_amount=0,
            is_active=True,
        ),
        round_data=RoundView(
            round_number=1,
            status=RoundPhase.VOTING,
            votes={Category.RED: 0, Category.BLACK: 0},
            participants=0,
            prize_amount=0,
            start_time=datetime(2026, 1, 1, tzinfo=timezone.utc),
        ),
        config=ConfigView(
            min_token_balance=1,
            voting_window_seconds=30,
            reveal_window_seconds=5,
            token_mint="mint",
        ),
    )


@pytest.mark.asyncio
async def test_subscribers_receive_published_snapshots():
    broadcaster = SnapshotBroadcaster()
    queue = broadcaster.subscribe()

    broadcaster.publish(_snapshot(1))

    assert (await queue.get()).sequence == 1


@pytest.mark.asyncio
async def test_slow_subscriber_keeps_newest_snapshots():
    broadcaster = SnapshotBroadcaster(queue_size=2)
    queue = broadcaster.subscribe()

    for sequence in range(1, 6):
        broadcaster.publish(_snapshot(sequence))

    assert queue.qsize() == 2
    assert [queue.get_nowait().sequence for _ in range(2)] == [4, 5]


@pytest.mark.asyncio
async def test_unsubscribed_queue_gets_nothing():
    broadcaster = SnapshotBroadcaster()
    queue = broadcaster.subscribe()
    broadcaster.unsubscribe(queue)

    broadcaster.publish(_snapshot(1))

    assert queue.empty()
    assert broadcaster.subscriber_count == 0


def test_failing_listener_does_not_break_publish():
    broadcaster = SnapshotBroadcaster()
    received = []

    def broken(snapshot):
        raise RuntimeError("transport down")

    broadcaster.add_listener(broken)
    broadcaster.add_listener(received.append)

    broadcaster.publish(_snapshot(7))

    assert [s.sequence for s in received] == [7]


def test_removed_listener_gets_nothing():
    broadcaster = SnapshotBroadcaster()
    received = []
    broadcaster.add_listener(received.append)

    broadcaster.publish(_snapshot(1))
    broadcaster.remove_listener(received.append)
    broadcaster.publish(_snapshot(2))

    assert [s.sequence for s in received] == [1]
