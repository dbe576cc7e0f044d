"""
Round Engine：回合生命週期的狀態機與計時器

職責：
1. 擁有進行中的回合，是唯一會改變 phase 的地方
2. 倒數計時：每秒一個 TICK，歸零時送出 ADVANCE_ON_TIMEOUT
3. 階段轉換時呼叫 outcome_service 開獎，並開下一個回合
4. 每次狀態改變後更新快照並廣播

並發模型：
    所有變更（投票、計時器、管理員操作）都放進同一個 asyncio.Queue，
    由單一 consumer 依序處理，計時器 callback 本身不改狀態。
    唯讀查詢（get_snapshot / remaining_time）直接讀最後一次提交的結果，不需要鎖。

I/O：
    資料庫呼叫一律透過 asyncio.to_thread，不會卡住 event loop。
    投票的資格檢查和 Vote 寫入在進入佇列之前完成，consumer 只做記憶體中的計入；
    階段轉換在 consumer 內 await 寫入，成功之後才提交新狀態。

回合流程：
    VOTING --(倒數歸零 / force_advance)--> REVEALING --(倒數歸零)--> COMPLETED
    COMPLETED 之後立刻開新回合（round_number + 1）
"""
import asyncio
import enum
import math
import random
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple
import logging

from models import Category, RoundPhase, utcnow
from schemas import ConfigView, GameSnapshot, GameStateView, RoundView
from core.broadcaster import SnapshotBroadcaster
from core.exceptions import (
    AnomalousTimerError,
    MissingActiveRoundError,
    RoundNotFound,
    TransientStorageError,
    ValidationError,
    WheelGameException,
)
from core.repository import GameStateRecord, RoundRecord, RoundRepository, VoteRecord
from core.state_machine import RoundStateMachine
from core.vote_ledger import VoteLedger
from database import Settings, get_settings
from services.outcome_service import choose_category, choose_winner

logger = logging.getLogger(__name__)


class CommandKind(str, enum.Enum):
    CAST_VOTE = "cast_vote"
    TICK = "tick"
    ADVANCE_ON_TIMEOUT = "advance_on_timeout"
    FORCE_ADVANCE = "force_advance"
    SET_PRIZE = "set_prize"
    MARK_PAID = "mark_paid"
    BARRIER = "barrier"


@dataclass
class EngineCommand:
    kind: CommandKind
    args: Tuple[Any, ...] = ()
    future: Optional[asyncio.Future] = None


@dataclass
class VoteResult:
    accepted: bool
    round_number: int
    category: Category
    tally: Dict[Category, int] = field(default_factory=dict)
    total_voters: int = 0
    remaining_time: int = 0
    phase: RoundPhase = RoundPhase.VOTING


class RoundEngine:
    """
    回合引擎（每個 process 一個實例）

    生命週期：
        engine = RoundEngine(repository, eligibility)
        await engine.start()      # start_engine() + consumer + ticker
        ...
        await engine.shutdown()
    """

    def __init__(
        self,
        repository: RoundRepository,
        eligibility,
        broadcaster: Optional[SnapshotBroadcaster] = None,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._settings = settings or get_settings()
        self._repository = repository
        self._eligibility = eligibility
        self._broadcaster = broadcaster or SnapshotBroadcaster(self._settings.subscriber_queue_size)
        self._rng = rng or random.SystemRandom()
        self._clock = clock
        self._ledger = VoteLedger()

        self._round: Optional[RoundRecord] = None
        self._game_state: Optional[GameStateRecord] = None
        self._remaining = 0
        self._timeout_enqueued = False
        self._halted = False
        self._started = False

        self._snapshot: Optional[GameSnapshot] = None
        self._sequence = 0

        self._queue: Optional[asyncio.Queue] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._ticker_task: Optional[asyncio.Task] = None

        self._handlers = {
            CommandKind.CAST_VOTE: self._handle_cast_vote,
            CommandKind.TICK: self._handle_tick,
            CommandKind.ADVANCE_ON_TIMEOUT: self.advance_on_timeout,
            CommandKind.FORCE_ADVANCE: self._handle_force_advance,
            CommandKind.SET_PRIZE: self._handle_set_prize,
            CommandKind.MARK_PAID: self._handle_mark_paid,
            CommandKind.BARRIER: self._handle_barrier,
        }

    # ============ 生命週期 ============

    @property
    def broadcaster(self) -> SnapshotBroadcaster:
        return self._broadcaster

    @property
    def is_running(self) -> bool:
        return self._consumer_task is not None and not self._consumer_task.done()

    async def start(self, autotick: bool = True) -> None:
        """
        啟動 Engine：恢復/建立回合，啟動 consumer 與（可選的）倒數 ticker

        參數：
            autotick: False 時不啟動 ticker，由呼叫者用 tick() 推進時間（測試用）
        """
        if self.is_running:
            return

        await self.start_engine()

        self._queue = asyncio.Queue()
        self._consumer_task = asyncio.create_task(self._consume(), name="round-engine-consumer")
        if autotick:
            self._ticker_task = asyncio.create_task(self._tick_loop(), name="round-engine-ticker")

        logger.info(
            f"Round engine running: round {self._round.round_number} "
            f"({self._round.phase.value}, {self._remaining}s left)"
        )

    async def shutdown(self) -> None:
        for task in (self._ticker_task, self._consumer_task):
            if task is not None:
                task.cancel()
        for task in (self._ticker_task, self._consumer_task):
            if task is not None:
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._ticker_task = None
        self._consumer_task = None

        if self._queue is not None:
            while not self._queue.empty():
                command = self._queue.get_nowait()
                if command.future is not None and not command.future.done():
                    command.future.set_exception(RuntimeError("Round engine shut down"))

        logger.info("Round engine stopped")

    async def start_engine(self) -> RoundRecord:
        """
        恢復或建立進行中的回合（冪等）

        流程：
        1. 讀取 GameState（沒有就建立）
        2. 讀取進行中的回合；沒有就建立 latest + 1（全新資料庫是 Round 1）
        3. 從已寫入的 Vote 重新計算票數
        4. 如果階段期限已過（process 停過），依序補做錯過的轉換
        5. 從期限計算剩餘時間

        異常：
            MissingActiveRoundError: 無法建立回合
        """
        if self._started:
            return self._round

        now = self._clock()
        try:
            game_state = await asyncio.to_thread(self._repository.load_game_state)
            active = await asyncio.to_thread(self._repository.load_active_round)
            if active is None:
                latest = await asyncio.to_thread(self._repository.load_latest_round_number)
                active = self._new_round(latest + 1, now)
                await asyncio.to_thread(self._repository.save_round, active)
                logger.info(f"🎲 NEW ROUND: {active.round_number} - VOTING PHASE")
            else:
                logger.info(
                    f"Resuming round {active.round_number} in {active.phase.value}"
                )
            votes = await asyncio.to_thread(self._repository.list_votes, active.round_number)
            game_state = await self._reconcile_game_state(game_state, active)
        except TransientStorageError as e:
            raise MissingActiveRoundError(f"Cannot load or create an active round: {e}") from e

        self._game_state = game_state
        self._round = active
        # list_votes 最新的在前面；Ledger 依投票順序計入
        self._ledger.open(active, reversed(votes))
        await self._replay_missed_transitions(now)

        if self._halted:
            raise MissingActiveRoundError(
                f"Round {self._round.round_number + 1} could not be created"
            )

        self._remaining = self._seconds_until(self._round.phase_deadline, now)
        await self._persist_round_quietly(self._round)
        await self._persist_game_state()
        self._started = True
        self._publish()
        return self._round

    # ============ 唯讀查詢 ============

    def remaining_time(self) -> int:
        return max(0, self._remaining)

    def get_snapshot(self) -> GameSnapshot:
        if self._snapshot is None:
            raise MissingActiveRoundError("Round engine has not started")
        return self._snapshot

    @property
    def active_round(self) -> Optional[RoundRecord]:
        if self._round is not None and self._round.is_active:
            return self._round
        return None

    @property
    def game_state(self) -> Optional[GameStateRecord]:
        return self._game_state

    # ============ 外部指令 ============

    async def cast_vote(self, voter_id: str, category) -> VoteResult:
        """
        投票

        流程：
        1. 用最後提交的狀態做快速檢查（階段、顏色、重複投票）
        2. 在佇列之外呼叫資格 oracle 和寫入 Vote（可能很慢，不能卡住計時器）；
           資料庫的 unique constraint 保證同一玩家同一回合只有一張票寫入成功
        3. 進入佇列，由 VoteLedger 重新檢查並計入
        4. 寫入期間投票已經結束 → 刪掉這張沒有被計入的票

        異常：
            ValidationError / DuplicateVoteError / TransientStorageError / MissingActiveRoundError
        """
        if self._halted or self.active_round is None:
            raise MissingActiveRoundError("No active round is accepting votes")

        round_number = self._round.round_number
        category = self._ledger.check(voter_id, category, round_number)

        if not await self._eligibility.is_eligible(voter_id):
            raise ValidationError("Wallet not verified. Please verify your wallet first.")

        vote = VoteRecord(
            voter_id=voter_id,
            round_number=round_number,
            category=category,
            created_at=self._clock(),
        )
        await asyncio.to_thread(self._repository.append_vote, vote)

        try:
            result = await self._submit(CommandKind.CAST_VOTE, vote)
        except (ValidationError, MissingActiveRoundError):
            await self._discard_vote(vote)
            raise

        await self._save_tally(round_number)
        return result

    async def force_advance(self) -> RoundRecord:
        """管理員提前結束目前階段（取消倒數，立刻做對應的轉換）"""
        return await self._submit(CommandKind.FORCE_ADVANCE)

    async def set_prize_amount(self, amount: float) -> RoundRecord:
        return await self._submit(CommandKind.SET_PRIZE, amount)

    async def mark_prize_paid(self, round_number: int) -> RoundRecord:
        return await self._submit(CommandKind.MARK_PAID, round_number)

    async def tick(self, count: int = 1) -> None:
        """推進倒數 count 秒，並等待所有因此產生的事件處理完畢"""
        for _ in range(count):
            self._enqueue(EngineCommand(CommandKind.TICK))
            await self.drain()

    async def drain(self) -> None:
        """等待佇列清空（包含處理過程中新產生的 ADVANCE_ON_TIMEOUT）"""
        await self._submit(CommandKind.BARRIER)
        while not self._queue.empty():
            await self._submit(CommandKind.BARRIER)

    # ============ 佇列 ============

    def _enqueue(self, command: EngineCommand) -> None:
        if self._queue is None or not self.is_running:
            raise RuntimeError("Round engine is not running")
        self._queue.put_nowait(command)

    async def _submit(self, kind: CommandKind, *args):
        future = asyncio.get_running_loop().create_future()
        self._enqueue(EngineCommand(kind, args, future))
        return await future

    async def _consume(self) -> None:
        while True:
            command = await self._queue.get()
            try:
                result = await self._handlers[command.kind](*command.args)
            except Exception as e:
                if command.future is not None and not command.future.done():
                    command.future.set_exception(e)
                elif isinstance(e, WheelGameException):
                    logger.warning(f"{command.kind.value} failed: {e}")
                else:
                    logger.error(f"Unexpected error in {command.kind.value}: {e}", exc_info=True)
            else:
                if command.future is not None and not command.future.done():
                    command.future.set_result(result)
            finally:
                self._queue.task_done()

    async def _tick_loop(self) -> None:
        interval = self._settings.tick_interval_seconds
        while True:
            await asyncio.sleep(interval)
            self._enqueue(EngineCommand(CommandKind.TICK))

    # ============ Handlers（只在 consumer 內執行）============

    async def _handle_barrier(self) -> None:
        return None

    async def _handle_cast_vote(self, vote: VoteRecord) -> VoteResult:
        if self._halted:
            raise MissingActiveRoundError("No active round is accepting votes")

        receipt = self._ledger.record(vote)
        self._publish()

        return VoteResult(
            accepted=True,
            round_number=receipt.round_number,
            category=receipt.category,
            tally=receipt.tally,
            total_voters=receipt.total_voters,
            remaining_time=self.remaining_time(),
            phase=self._round.phase,
        )

    async def _handle_tick(self) -> None:
        if self._halted:
            await self._open_round(self._round.round_number + 1, self._clock())
            return

        counted_down = self._remaining > 0
        if counted_down:
            self._remaining -= 1

        # 倒數停在 0（轉換失敗等待重試）時不送心跳
        heartbeat = self._settings.heartbeat_interval_seconds
        if counted_down and heartbeat > 0 and self._remaining % heartbeat == 0:
            self._publish()
        else:
            self._refresh_snapshot()

        if self._remaining == 0 and not self._timeout_enqueued:
            self._timeout_enqueued = True
            self._enqueue(EngineCommand(
                CommandKind.ADVANCE_ON_TIMEOUT,
                (self._round.round_number, self._round.phase),
            ))

    async def advance_on_timeout(self, round_number: int, phase: RoundPhase) -> Optional[RoundRecord]:
        """
        計時器到期：推進 round_number 的 phase

        如果目標回合/階段已經不是目前狀態（重複或遲到的計時器），
        記錄 AnomalousTimerError 後丟棄，不做任何狀態變更
        """
        current = self._round
        if (
            self._halted
            or current is None
            or current.round_number != round_number
            or current.phase != phase
        ):
            error = AnomalousTimerError(
                round_number,
                phase,
                current.round_number if current else None,
                current.phase if current else None,
            )
            logger.warning(f"Discarding stale timer: {error}")
            return None

        try:
            await self._advance(self._clock())
        except TransientStorageError:
            # 倒數維持 0，下一個 TICK 會再送一次
            self._timeout_enqueued = False
            raise
        return self._round

    async def _handle_force_advance(self) -> RoundRecord:
        current = self.active_round
        if self._halted or current is None:
            raise MissingActiveRoundError("No active round to advance")

        logger.info(
            f"Force advancing round {current.round_number} from {current.phase.value}"
        )
        # 取消倒數；已經在佇列中的舊 timeout 會因為階段不符被丟棄
        self._remaining = 0
        self._timeout_enqueued = True
        return await self.advance_on_timeout(current.round_number, current.phase)

    async def _handle_set_prize(self, amount: float) -> RoundRecord:
        if amount is None or amount <= 0:
            raise ValidationError("Invalid prize amount")

        current = self.active_round
        if self._halted or current is None:
            raise MissingActiveRoundError("Current round not found")

        updated = replace(current, prize_amount=amount, tally=dict(current.tally))
        await asyncio.to_thread(self._repository.save_round, updated)
        self._commit_round(updated)

        logger.info(f"Prize amount set to {amount} for round {updated.round_number}")
        self._publish()
        return updated

    async def _handle_mark_paid(self, round_number: int) -> RoundRecord:
        is_current = self._round is not None and self._round.round_number == round_number
        if is_current:
            record = self._round
        else:
            record = await asyncio.to_thread(self._repository.load_round, round_number)

        if record is None or not record.winner:
            raise RoundNotFound(round_number)
        if record.prize_paid:
            raise ValidationError(f"Prize for round {round_number} already marked as paid")

        updated = replace(record, prize_paid=True, tally=dict(record.tally))
        await asyncio.to_thread(self._repository.save_round, updated)
        if is_current:
            self._commit_round(updated)

        self._game_state = replace(
            self._game_state,
            total_prizes_given=self._game_state.total_prizes_given + updated.prize_amount,
            last_prize_amount=updated.prize_amount,
            updated_at=self._clock(),
        )
        await self._persist_game_state()

        logger.info(
            f"Prize payment recorded for round {round_number}: "
            f"{updated.prize_amount} to {updated.winner}"
        )
        self._publish()
        return updated

    # ============ 階段轉換 ============

    async def _advance(self, now: datetime) -> None:
        target = RoundStateMachine.next_phase(self._round.phase)
        if target == RoundPhase.REVEALING:
            await self._enter_revealing(now)
        else:
            await self._complete_round(now, next_started_at=now)

    async def _enter_revealing(self, started_at: datetime) -> None:
        """
        VOTING -> REVEALING

        效果：
        - 凍結票數
        - 隨機選出獲勝顏色（與票數無關）
        - 倒數重設為 reveal_window_seconds
        """
        current = self._round
        RoundStateMachine.validate(current.phase, RoundPhase.REVEALING)

        window = self._settings.reveal_window_seconds
        updated = replace(
            current,
            phase=RoundPhase.REVEALING,
            tally=self._ledger.tally(),
            chosen_category=choose_category(self._rng),
            phase_started_at=started_at,
            phase_deadline=started_at + timedelta(seconds=window),
        )
        await asyncio.to_thread(self._repository.save_round, updated)

        self._ledger.freeze()
        self._commit_round(updated)
        self._reset_countdown(window)

        logger.info(f"⏰ Voting ended for round {updated.round_number}")
        logger.info(
            f"🎯 Winning Color: {updated.chosen_category.value.upper()} (SELECTED) "
            f"- red={updated.tally[Category.RED]}, black={updated.tally[Category.BLACK]}"
        )
        self._publish()

    async def _complete_round(self, ended_at: datetime, next_started_at: datetime) -> None:
        """
        REVEALING -> COMPLETED，然後開下一個回合

        效果：
        - 從投給獲勝顏色的玩家中選出贏家（沒有人 → None）
        - 更新 GameState 統計
        - 建立 round_number + 1（VOTING）
        """
        current = self._round
        RoundStateMachine.validate(current.phase, RoundPhase.COMPLETED)

        eligible = self._ledger.votes_for(current.chosen_category)
        winner = choose_winner(eligible, current.chosen_category, self._rng)

        completed = replace(
            current,
            phase=RoundPhase.COMPLETED,
            tally=dict(current.tally),
            winner=winner,
            ended_at=ended_at,
        )
        await asyncio.to_thread(self._repository.save_round, completed)
        self._commit_round(completed)

        self._game_state = replace(
            self._game_state,
            current_round_number=completed.round_number + 1,
            total_rounds_completed=self._game_state.total_rounds_completed + 1,
            last_winner=winner,
            last_prize_amount=completed.prize_amount,
            updated_at=ended_at,
        )

        logger.info(f"🎰 ROUND {completed.round_number} RESULTS:")
        logger.info(
            f"🎲 Eligible Voters: {len(eligible)} ({completed.chosen_category.value} voters)"
        )
        logger.info(f"🏆 Winner: {winner or 'No Winner'}")
        self._publish()

        await self._open_round(completed.round_number + 1, next_started_at)

    async def _open_round(self, round_number: int, started_at: datetime) -> bool:
        """
        建立新回合（VOTING）

        失敗時 Engine 進入 halted：不接受投票，每個 TICK 重試一次
        """
        record = self._new_round(round_number, started_at)
        try:
            await asyncio.to_thread(self._repository.save_round, record)
        except TransientStorageError:
            if not self._halted:
                logger.error(
                    f"Cannot create round {round_number}; vote admission halted",
                    exc_info=True
                )
            self._halted = True
            return False

        self._halted = False
        self._round = record
        self._ledger.open(record)
        self._reset_countdown(self._settings.voting_window_seconds)
        await self._persist_game_state()

        logger.info(f"🆕 Round {round_number} started!")
        self._publish()
        return True

    async def _replay_missed_transitions(self, now: datetime) -> None:
        """process 暫停期間錯過的期限，依序補做（VOTING → REVEALING → COMPLETED）"""
        while (
            not self._halted
            and self._round.phase_deadline is not None
            and self._round.phase_deadline <= now
        ):
            deadline = self._round.phase_deadline
            logger.warning(
                f"Replaying missed {self._round.phase.value} deadline "
                f"for round {self._round.round_number} ({deadline.isoformat()})"
            )
            try:
                if RoundStateMachine.next_phase(self._round.phase) == RoundPhase.REVEALING:
                    await self._enter_revealing(deadline)
                else:
                    await self._complete_round(deadline, next_started_at=now)
            except TransientStorageError:
                # 倒數會是 0，第一個 TICK 會重試這個轉換
                logger.error(
                    f"Replay of round {self._round.round_number} failed; retrying on next tick",
                    exc_info=True
                )
                break

    # ============ 輔助函式 ============

    def _new_round(self, round_number: int, started_at: datetime) -> RoundRecord:
        return RoundRecord(
            round_number=round_number,
            phase=RoundPhase.VOTING,
            started_at=started_at,
            phase_started_at=started_at,
            phase_deadline=started_at + timedelta(seconds=self._settings.voting_window_seconds),
        )

    async def _reconcile_game_state(
        self,
        game_state: Optional[GameStateRecord],
        active: RoundRecord
    ) -> GameStateRecord:
        """修正 crash 造成的部分寫入（回合已完成但 GameState 還沒更新）"""
        if game_state is None:
            return GameStateRecord(
                current_round_number=active.round_number,
                total_rounds_completed=active.round_number - 1,
            )

        if game_state.current_round_number == active.round_number:
            return game_state

        logger.warning(
            f"GameState points at round {game_state.current_round_number}, "
            f"active round is {active.round_number}; reconciling"
        )
        previous = await asyncio.to_thread(self._repository.load_round, active.round_number - 1)
        return replace(
            game_state,
            current_round_number=active.round_number,
            total_rounds_completed=max(
                game_state.total_rounds_completed, active.round_number - 1
            ),
            last_winner=previous.winner if previous else game_state.last_winner,
            last_prize_amount=previous.prize_amount if previous else game_state.last_prize_amount,
        )

    def _seconds_until(self, deadline: Optional[datetime], now: datetime) -> int:
        window = (
            self._settings.voting_window_seconds
            if self._round.phase == RoundPhase.VOTING
            else self._settings.reveal_window_seconds
        )
        if deadline is None:
            return window
        seconds = math.ceil((deadline - now).total_seconds())
        return min(window, max(0, seconds))

    def _reset_countdown(self, seconds: int) -> None:
        self._remaining = max(0, seconds)
        self._timeout_enqueued = False

    def _commit_round(self, record: RoundRecord) -> None:
        self._round = record
        self._ledger.rebind(record)

    async def _discard_vote(self, vote: VoteRecord) -> None:
        logger.info(
            f"Vote by {vote.voter_id} arrived after round {vote.round_number} closed; discarding"
        )
        try:
            await asyncio.to_thread(
                self._repository.discard_vote, vote.voter_id, vote.round_number
            )
        except TransientStorageError:
            logger.error(
                f"Failed to discard uncounted vote by {vote.voter_id} in round {vote.round_number}",
                exc_info=True
            )

    async def _save_tally(self, round_number: int) -> None:
        # Vote 已經寫入，票數會在下一次儲存或重啟時補齊
        try:
            await asyncio.to_thread(self._repository.refresh_tally, round_number)
        except TransientStorageError:
            logger.error(f"Round {round_number} tally not saved", exc_info=True)

    async def _persist_round_quietly(self, record: RoundRecord) -> None:
        try:
            await asyncio.to_thread(self._repository.save_round, record)
        except TransientStorageError:
            logger.error(f"Failed to save round {record.round_number}", exc_info=True)

    async def _persist_game_state(self) -> None:
        # 記憶體中的 GameState 是權威版本；寫入失敗會在下一次儲存時補上
        try:
            await asyncio.to_thread(self._repository.save_game_state, self._game_state)
        except TransientStorageError:
            logger.error("Failed to save game state", exc_info=True)

    # ============ 快照 ============

    def _build_snapshot(self) -> GameSnapshot:
        current = self._round
        game_state = self._game_state
        settings = self._settings

        return GameSnapshot(
            sequence=self._sequence,
            game_state=GameStateView(
                current_round=current.round_number,
                time_left=self.remaining_time(),
                current_phase=current.phase,
                total_prizes_given=game_state.total_prizes_given,
                total_rounds_played=game_state.total_rounds_completed,
                last_winner=game_state.last_winner,
                last_prize_amount=game_state.last_prize_amount,
                is_active=game_state.is_active and not self._halted,
                connected_clients=self._broadcaster.subscriber_count,
            ),
            round_data=RoundView(
                round_number=current.round_number,
                status=current.phase,
                votes=dict(current.tally),
                participants=current.total_votes,
                winning_color=current.chosen_category,
                winner=current.winner,
                prize_amount=current.prize_amount,
                start_time=current.started_at,
            ),
            config=ConfigView(
                min_token_balance=settings.min_token_balance,
                voting_window_seconds=settings.voting_window_seconds,
                reveal_window_seconds=settings.reveal_window_seconds,
                token_mint=settings.token_mint,
            ),
        )

    def _refresh_snapshot(self) -> GameSnapshot:
        self._sequence += 1
        self._snapshot = self._build_snapshot()
        return self._snapshot

    def _publish(self) -> None:
        self._broadcaster.publish(self._refresh_snapshot())
