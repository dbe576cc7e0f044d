"""
Round history service.

Builds the read-only views the frontend uses for the history table and
the live participant list, straight from the repository.
"""
from typing import List

from models import Category
from schemas import (
    ParticipantsResponse,
    RoundHistoryEntry,
    VoteCount,
    VoteView,
)
from core.repository import RoundRecord, RoundRepository


def get_round_history(repository: RoundRepository, limit: int = 50) -> List[RoundHistoryEntry]:
    """
    Return the most recent completed rounds, newest first.

    Rounds without a winner are included (winner is None) so the
    frontend can show "No Winner" rows.
    """
    return [
        RoundHistoryEntry(
            round_number=record.round_number,
            votes=dict(record.tally),
            winning_color=record.chosen_category,
            winner=record.winner,
            prize_amount=record.prize_amount,
            prize_paid=record.prize_paid,
            end_time=record.ended_at,
        )
        for record in repository.list_completed_rounds(limit)
    ]


def get_participants_summary(
    repository: RoundRepository,
    active_round: RoundRecord,
    limit: int = 20
) -> ParticipantsResponse:
    """Vote counts for the active round plus its most recent votes."""
    votes = repository.list_votes(active_round.round_number, limit=limit)
    red = active_round.tally[Category.RED]
    black = active_round.tally[Category.BLACK]

    return ParticipantsResponse(
        round_number=active_round.round_number,
        participants=active_round.total_votes,
        vote_count=VoteCount(red=red, black=black, total=red + black),
        recent_votes=[
            VoteView(
                wallet_address=vote.voter_id,
                color=vote.category,
                timestamp=vote.created_at,
            )
            for vote in votes
        ],
    )
