"""
Repository：Engine 讀寫 Round / Vote / GameState 的唯一通道

職責：
1. 把 ORM 物件轉成純資料（RoundRecord / VoteRecord / GameStateRecord），
   Engine 不會在 await 之間持有 live ORM 物件
2. 每個方法自己開 session，一個方法 = 一個 transaction
3. 把 SQLAlchemyError 轉成 TransientStorageError（呼叫者可重試）
4. 同一時間只讓一個 thread 使用資料庫（Engine 透過 asyncio.to_thread 呼叫）

注意：
    方法之間沒有跨呼叫的 transaction，Engine 必須容忍 crash 時的部分寫入
    （例如 Round 已經 COMPLETED 但 GameState 還沒更新），由 start_engine() 補齊
"""
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional
import logging
import threading

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from models import (
    ACTIVE_PHASES,
    Category,
    GameState,
    Participant,
    Round,
    RoundPhase,
    Vote,
    utcnow,
)
from core.locks import with_round_lock, with_game_state_lock
from core.exceptions import DuplicateVoteError, TransientStorageError
from database import transactional

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite 讀回來的 datetime 沒有 tzinfo
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def empty_tally() -> Dict[Category, int]:
    return {category: 0 for category in Category}


@dataclass
class RoundRecord:
    round_number: int
    phase: RoundPhase = RoundPhase.VOTING
    tally: Dict[Category, int] = field(default_factory=empty_tally)
    chosen_category: Optional[Category] = None
    winner: Optional[str] = None
    prize_amount: float = 0
    prize_paid: bool = False
    started_at: datetime = field(default_factory=utcnow)
    phase_started_at: datetime = field(default_factory=utcnow)
    phase_deadline: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def total_votes(self) -> int:
        return sum(self.tally.values())

    @property
    def is_active(self) -> bool:
        return self.phase in ACTIVE_PHASES


@dataclass
class VoteRecord:
    voter_id: str
    round_number: int
    category: Category
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class GameStateRecord:
    current_round_number: int = 1
    total_rounds_completed: int = 0
    total_prizes_given: float = 0
    last_winner: Optional[str] = None
    last_prize_amount: float = 0
    is_active: bool = True
    updated_at: datetime = field(default_factory=utcnow)


def _round_to_record(round_obj: Round) -> RoundRecord:
    return RoundRecord(
        round_number=round_obj.round_number,
        phase=round_obj.phase,
        tally={
            Category.RED: round_obj.red_votes,
            Category.BLACK: round_obj.black_votes,
        },
        chosen_category=round_obj.chosen_category,
        winner=round_obj.winner,
        prize_amount=round_obj.prize_amount,
        prize_paid=round_obj.prize_paid,
        started_at=_as_utc(round_obj.started_at),
        phase_started_at=_as_utc(round_obj.phase_started_at),
        phase_deadline=_as_utc(round_obj.phase_deadline),
        ended_at=_as_utc(round_obj.ended_at),
    )


def _vote_to_record(vote: Vote) -> VoteRecord:
    return VoteRecord(
        voter_id=vote.voter_id,
        round_number=vote.round_number,
        category=vote.category,
        created_at=_as_utc(vote.created_at),
    )


def _game_state_to_record(state: GameState) -> GameStateRecord:
    return GameStateRecord(
        current_round_number=state.current_round_number,
        total_rounds_completed=state.total_rounds_completed,
        total_prizes_given=state.total_prizes_given,
        last_winner=state.last_winner,
        last_prize_amount=state.last_prize_amount,
        is_active=state.is_active,
        updated_at=_as_utc(state.updated_at),
    )


@transactional
def _upsert_round(db: Session, record: RoundRecord) -> None:
    round_obj = with_round_lock(record.round_number, db).first()
    if round_obj is None:
        round_obj = Round(round_number=record.round_number)
        db.add(round_obj)

    round_obj.phase = record.phase
    round_obj.red_votes = record.tally[Category.RED]
    round_obj.black_votes = record.tally[Category.BLACK]
    round_obj.chosen_category = record.chosen_category
    round_obj.winner = record.winner
    round_obj.prize_amount = record.prize_amount
    round_obj.prize_paid = record.prize_paid
    round_obj.started_at = record.started_at
    round_obj.phase_started_at = record.phase_started_at
    round_obj.phase_deadline = record.phase_deadline
    round_obj.ended_at = record.ended_at


@transactional
def _upsert_game_state(db: Session, record: GameStateRecord) -> None:
    state = with_game_state_lock(db).first()
    if state is None:
        state = GameState(id=1)
        db.add(state)

    state.current_round_number = record.current_round_number
    state.total_rounds_completed = record.total_rounds_completed
    state.total_prizes_given = record.total_prizes_given
    state.last_winner = record.last_winner
    state.last_prize_amount = record.last_prize_amount
    state.is_active = record.is_active
    state.updated_at = record.updated_at


@transactional
def _insert_vote(db: Session, record: VoteRecord) -> None:
    db.add(Vote(
        voter_id=record.voter_id,
        round_number=record.round_number,
        category=record.category,
        created_at=record.created_at,
    ))


@transactional
def _delete_vote(db: Session, voter_id: str, round_number: int) -> None:
    db.query(Vote).filter(
        Vote.voter_id == voter_id,
        Vote.round_number == round_number
    ).delete()


@transactional
def _recount_round(db: Session, round_number: int) -> None:
    round_obj = with_round_lock(round_number, db).first()
    if round_obj is None or round_obj.phase != RoundPhase.VOTING:
        # 投票結束後票數已凍結
        return

    counts = dict(
        db.query(Vote.category, func.count(Vote.id))
        .filter(Vote.round_number == round_number)
        .group_by(Vote.category)
        .all()
    )
    round_obj.red_votes = counts.get(Category.RED, 0)
    round_obj.black_votes = counts.get(Category.BLACK, 0)


class RoundRepository:
    """SQLAlchemy 實作的 Repository"""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        # SQLite 一次只能有一個寫入者；in-memory（StaticPool）時所有 thread 共用同一條連線
        self._lock = threading.RLock()

    @contextmanager
    def _session(self, operation: str):
        """開 session，並把資料庫錯誤轉成 TransientStorageError"""
        try:
            with self._lock, self._session_factory() as db:
                yield db
        except (DuplicateVoteError, TransientStorageError):
            raise
        except SQLAlchemyError as e:
            logger.error(f"Storage failure in {operation}: {e}", exc_info=True)
            raise TransientStorageError(f"{operation} failed: {e}") from e

    # ============ Round ============

    def load_active_round(self) -> Optional[RoundRecord]:
        with self._session("load_active_round") as db:
            round_obj = (
                db.query(Round)
                .filter(Round.phase.in_(ACTIVE_PHASES))
                .order_by(Round.round_number.desc())
                .first()
            )
            return _round_to_record(round_obj) if round_obj else None

    def load_round(self, round_number: int) -> Optional[RoundRecord]:
        with self._session("load_round") as db:
            round_obj = db.query(Round).filter(Round.round_number == round_number).first()
            return _round_to_record(round_obj) if round_obj else None

    def load_latest_round_number(self) -> int:
        with self._session("load_latest_round_number") as db:
            return db.query(func.max(Round.round_number)).scalar() or 0

    def save_round(self, record: RoundRecord) -> None:
        with self._session("save_round") as db:
            _upsert_round(db, record)

    def list_completed_rounds(self, limit: int = 50) -> List[RoundRecord]:
        with self._session("list_completed_rounds") as db:
            rows = (
                db.query(Round)
                .filter(Round.phase == RoundPhase.COMPLETED)
                .order_by(Round.round_number.desc())
                .limit(limit)
                .all()
            )
            return [_round_to_record(r) for r in rows]

    # ============ GameState ============

    def load_game_state(self) -> Optional[GameStateRecord]:
        with self._session("load_game_state") as db:
            state = db.query(GameState).first()
            return _game_state_to_record(state) if state else None

    def save_game_state(self, record: GameStateRecord) -> None:
        with self._session("save_game_state") as db:
            _upsert_game_state(db, record)

    # ============ Vote ============

    def append_vote(self, record: VoteRecord) -> None:
        """
        新增一張票

        異常：
            DuplicateVoteError: (voter_id, round_number) 已存在（unique constraint）
            TransientStorageError: 其他資料庫錯誤
        """
        try:
            with self._session("append_vote") as db:
                _insert_vote(db, record)
        except TransientStorageError as e:
            if not isinstance(e.__cause__, IntegrityError):
                raise
            previous = self.find_vote(record.voter_id, record.round_number)
            if previous is None:
                raise
            raise DuplicateVoteError(
                record.voter_id, record.round_number, previous.category
            ) from e

    def find_vote(self, voter_id: str, round_number: int) -> Optional[VoteRecord]:
        with self._session("find_vote") as db:
            vote = db.query(Vote).filter(
                Vote.voter_id == voter_id,
                Vote.round_number == round_number
            ).first()
            return _vote_to_record(vote) if vote else None

    def discard_vote(self, voter_id: str, round_number: int) -> None:
        """刪除沒有被計入的票（寫入後投票已經結束）"""
        with self._session("discard_vote") as db:
            _delete_vote(db, voter_id, round_number)

    def refresh_tally(self, round_number: int) -> None:
        """從 Vote 重新計算 VOTING 回合的票數；其他階段不動"""
        with self._session("refresh_tally") as db:
            _recount_round(db, round_number)

    def list_votes(self, round_number: int, limit: Optional[int] = None) -> List[VoteRecord]:
        """回合內的票，最新的在前面"""
        with self._session("list_votes") as db:
            query = (
                db.query(Vote)
                .filter(Vote.round_number == round_number)
                .order_by(Vote.id.desc())
            )
            if limit is not None:
                query = query.limit(limit)
            return [_vote_to_record(v) for v in query.all()]

    # ============ Participant ============

    def is_verified_participant(self, wallet_address: str) -> bool:
        with self._session("is_verified_participant") as db:
            count = db.query(Participant).filter(
                Participant.wallet_address == wallet_address,
                Participant.is_verified == True
            ).count()
            return count > 0

    def save_participant(self, wallet_address: str, token_balance: int, is_verified: bool) -> None:
        with self._session("save_participant") as db:
            _upsert_participant(db, wallet_address, token_balance, is_verified)


@transactional
def _upsert_participant(db: Session, wallet_address: str, token_balance: int, is_verified: bool) -> None:
    participant = db.query(Participant).filter(
        Participant.wallet_address == wallet_address
    ).first()
    if participant is None:
        participant = Participant(wallet_address=wallet_address)
        db.add(participant)

    participant.token_balance = token_balance
    participant.is_verified = is_verified
    participant.last_verified_at = utcnow()
