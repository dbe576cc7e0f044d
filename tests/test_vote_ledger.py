"""Tests for VoteLedger: precondition order, dedup and winner pool."""

from dataclasses import replace

import pytest

from core.exceptions import DuplicateVoteError, ValidationError
from core.repository import RoundRecord, VoteRecord
from core.vote_ledger import VoteLedger
from models import Category, RoundPhase


def _vote(voter_id, category, round_number=1):
    return VoteRecord(voter_id=voter_id, round_number=round_number, category=Category(category))


@pytest.fixture
def open_round():
    return RoundRecord(round_number=1)


@pytest.fixture
def ledger(open_round):
    vote_ledger = VoteLedger()
    vote_ledger.open(open_round)
    return vote_ledger


def test_record_updates_tally_and_voters(ledger, open_round):
    receipt = ledger.record(_vote("wallet-x", "red"))

    assert receipt.tally == {Category.RED: 1, Category.BLACK: 0}
    assert receipt.total_voters == 1
    assert ledger.previous_vote("wallet-x") == Category.RED
    assert open_round.tally[Category.RED] == 1


def test_duplicate_vote_reports_previous_choice(ledger):
    ledger.record(_vote("wallet-x", "red"))

    with pytest.raises(DuplicateVoteError) as exc_info:
        ledger.check("wallet-x", Category.BLACK, 1)

    assert exc_info.value.previous_vote == Category.RED
    assert ledger.tally() == {Category.RED: 1, Category.BLACK: 0}


def test_check_parses_category(ledger):
    assert ledger.check("wallet-x", "black", 1) == Category.BLACK
    # check 不會計入
    assert ledger.tally() == {Category.RED: 0, Category.BLACK: 0}


def test_wrong_round_rejected(ledger):
    with pytest.raises(ValidationError, match="not the active round"):
        ledger.check("wallet-x", "red", 2)


def test_invalid_category_rejected(ledger):
    with pytest.raises(ValidationError):
        ledger.check("wallet-x", "green", 1)
    assert ledger.previous_vote("wallet-x") is None


def test_phase_checked_before_category_and_duplicate(ledger):
    ledger.record(_vote("wallet-x", "red"))
    ledger.freeze()

    # 第一個失敗的條件（不是 VOTING）勝出，而不是重複投票
    with pytest.raises(ValidationError, match="Voting is not active"):
        ledger.check("wallet-x", "green", 1)


def test_frozen_ledger_rejects_stored_votes(ledger, open_round):
    ledger.freeze()
    ledger.rebind(replace(open_round, phase=RoundPhase.REVEALING))

    with pytest.raises(ValidationError):
        ledger.record(_vote("wallet-y", "black"))
    assert ledger.tally() == {Category.RED: 0, Category.BLACK: 0}
    assert ledger.votes_for(Category.BLACK) == []


def test_open_recounts_tally_from_stored_votes():
    stale = RoundRecord(round_number=4)
    votes = [
        _vote("a", "red", 4),
        _vote("b", "black", 4),
        _vote("c", "black", 4),
        _vote("z", "red", 3),
    ]

    vote_ledger = VoteLedger()
    vote_ledger.open(stale, votes)

    assert stale.tally == {Category.RED: 1, Category.BLACK: 2}
    assert vote_ledger.previous_vote("b") == Category.BLACK
    assert vote_ledger.previous_vote("z") is None


def test_votes_for_keeps_acceptance_order(ledger):
    for voter_id, category in [("a", "black"), ("b", "red"), ("c", "black")]:
        ledger.record(_vote(voter_id, category))

    assert [v.voter_id for v in ledger.votes_for(Category.BLACK)] == ["a", "c"]
    assert [v.voter_id for v in ledger.votes_for(Category.RED)] == ["b"]


def test_rebind_rejects_other_round(ledger):
    with pytest.raises(ValueError):
        ledger.rebind(RoundRecord(round_number=2))


def test_database_constraint_dedups_votes(repository):
    repository.save_round(RoundRecord(round_number=1))
    repository.append_vote(_vote("wallet-x", "black"))

    with pytest.raises(DuplicateVoteError) as exc_info:
        repository.append_vote(_vote("wallet-x", "red"))

    assert exc_info.value.previous_vote == Category.BLACK


def test_discarded_vote_can_be_cast_again(repository):
    repository.save_round(RoundRecord(round_number=1))
    repository.append_vote(_vote("wallet-x", "black"))

    repository.discard_vote("wallet-x", 1)

    assert repository.find_vote("wallet-x", 1) is None
    repository.append_vote(_vote("wallet-x", "red"))
    assert repository.find_vote("wallet-x", 1).category == Category.RED


def test_refresh_tally_only_touches_voting_rounds(repository):
    repository.save_round(RoundRecord(round_number=1))
    repository.append_vote(_vote("a", "red"))
    repository.append_vote(_vote("b", "red"))

    repository.refresh_tally(1)
    assert repository.load_round(1).tally == {Category.RED: 2, Category.BLACK: 0}

    frozen = replace(repository.load_round(1), phase=RoundPhase.REVEALING)
    repository.save_round(frozen)
    repository.append_vote(_vote("c", "black"))
    repository.refresh_tally(1)

    assert repository.load_round(1).tally == {Category.RED: 2, Category.BLACK: 0}
