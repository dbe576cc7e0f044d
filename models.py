"""
資料表定義（SQLAlchemy ORM）

- Round：每一回合（投票 → 揭曉 → 完成）
- Vote：玩家在某回合的一張票，(voter_id, round_number) 唯一
- GameState：全域統計（單一列）
- Participant：通過錢包餘額驗證的玩家
"""
import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    Integer,
    String,
    UniqueConstraint,
)

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Category(str, enum.Enum):
    """投票選項（兩個互斥的顏色）"""
    RED = "red"
    BLACK = "black"


class RoundPhase(str, enum.Enum):
    """回合階段：VOTING -> REVEALING -> COMPLETED"""
    VOTING = "voting"
    REVEALING = "revealing"
    COMPLETED = "completed"


ACTIVE_PHASES = (RoundPhase.VOTING, RoundPhase.REVEALING)


class Round(Base):
    __tablename__ = "rounds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_number = Column(Integer, nullable=False, unique=True, index=True)
    phase = Column(Enum(RoundPhase), nullable=False, default=RoundPhase.VOTING)

    red_votes = Column(Integer, nullable=False, default=0)
    black_votes = Column(Integer, nullable=False, default=0)

    chosen_category = Column(Enum(Category), nullable=True)
    # NULL 且 phase=COMPLETED 代表沒有贏家
    winner = Column(String, nullable=True)

    prize_amount = Column(Float, nullable=False, default=0)
    prize_paid = Column(Boolean, nullable=False, default=False)

    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    phase_started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    phase_deadline = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("voter_id", "round_number", name="uq_vote_voter_round"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    voter_id = Column(String, nullable=False, index=True)
    round_number = Column(Integer, nullable=False, index=True)
    category = Column(Enum(Category), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class GameState(Base):
    __tablename__ = "game_state"

    id = Column(Integer, primary_key=True, default=1)
    current_round_number = Column(Integer, nullable=False, default=1)
    total_rounds_completed = Column(Integer, nullable=False, default=0)
    total_prizes_given = Column(Float, nullable=False, default=0)
    last_winner = Column(String, nullable=True)
    last_prize_amount = Column(Float, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Participant(Base):
    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet_address = Column(String, nullable=False, unique=True, index=True)
    token_balance = Column(Integer, nullable=False, default=0)
    is_verified = Column(Boolean, nullable=False, default=False)
    last_verified_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
