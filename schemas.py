"""
Pydantic schemas：API request / response 與廣播快照
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from models import Category, RoundPhase


# ============ Snapshot ============

class GameStateView(BaseModel):
    current_round: int
    time_left: int
    current_phase: RoundPhase
    total_prizes_given: float
    total_rounds_played: int
    last_winner: Optional[str] = None
    last_prize_amount: float
    is_active: bool
    connected_clients: int = 0


class RoundView(BaseModel):
    round_number: int
    status: RoundPhase
    votes: Dict[Category, int]
    participants: int
    winning_color: Optional[Category] = None
    winner: Optional[str] = None
    prize_amount: float
    start_time: datetime


class ConfigView(BaseModel):
    min_token_balance: int
    voting_window_seconds: int
    reveal_window_seconds: int
    token_mint: str


class GameSnapshot(BaseModel):
    """完整且自洽的遊戲狀態（GameState + 進行中回合 + 設定）"""
    sequence: int
    game_state: GameStateView
    round_data: RoundView
    config: ConfigView


# ============ Vote ============

class VoteSubmit(BaseModel):
    wallet_address: str = Field(..., min_length=1)
    color: str


class VoteData(BaseModel):
    color: Category
    round_number: int
    time_left: int
    current_phase: RoundPhase
    votes: Dict[Category, int]
    total_voters: int


class VoteResponse(BaseModel):
    success: bool = True
    message: str
    vote_data: VoteData


# ============ Wallet ============

class WalletVerify(BaseModel):
    wallet_address: str = Field(..., min_length=1)


class WalletVerifyResponse(BaseModel):
    success: bool = True
    balance: int
    is_verified: bool
    current_phase: RoundPhase
    time_left: int
    message: str


# ============ Admin ============

class PrizeSubmit(BaseModel):
    prize_amount: float


class MarkPaidSubmit(BaseModel):
    round_number: int


class AdminResponse(BaseModel):
    success: bool = True
    message: str


class MarkPaidResponse(AdminResponse):
    winner: str
    amount: float


# ============ History / Participants ============

class VoteView(BaseModel):
    wallet_address: str
    color: Category
    timestamp: datetime


class VoteCount(BaseModel):
    red: int
    black: int
    total: int


class ParticipantsResponse(BaseModel):
    success: bool = True
    round_number: int
    participants: int
    vote_count: VoteCount
    recent_votes: List[VoteView]


class RoundHistoryEntry(BaseModel):
    round_number: int
    votes: Dict[Category, int]
    winning_color: Optional[Category] = None
    winner: Optional[str] = None
    prize_amount: float
    prize_paid: bool
    end_time: Optional[datetime] = None


class HistoryResponse(BaseModel):
    success: bool = True
    rounds: List[RoundHistoryEntry]
    total_rounds: int
