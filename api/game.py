"""
Game API Endpoints

職責：
1. 查詢遊戲狀態（快照）
2. 投票
3. 查詢本回合投票者、歷史回合
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
import logging

from api.deps import get_engine, get_repository
from core.exceptions import (
    DuplicateVoteError,
    MissingActiveRoundError,
    TransientStorageError,
    ValidationError,
)
from core.repository import RoundRepository
from core.round_engine import RoundEngine
from schemas import (
    GameSnapshot,
    HistoryResponse,
    ParticipantsResponse,
    VoteData,
    VoteResponse,
    VoteSubmit,
)
from services.history_service import get_participants_summary, get_round_history

router = APIRouter(prefix="/api", tags=["game"])
logger = logging.getLogger(__name__)


@router.get("/status", response_model=GameSnapshot)
def get_status(engine: RoundEngine = Depends(get_engine)):
    """
    取得目前的遊戲快照

    返回：
        - game_state: 回合數、剩餘時間、階段、統計
        - round_data: 票數、獲勝顏色、贏家、獎金
        - config: 最低持幣量、投票/揭曉秒數
    """
    try:
        return engine.get_snapshot()
    except MissingActiveRoundError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post("/vote", response_model=VoteResponse)
async def cast_vote(vote_data: VoteSubmit, engine: RoundEngine = Depends(get_engine)):
    """
    投票（核心 endpoint）

    前置條件：
    - 目前是 VOTING 階段
    - color 是 red 或 black
    - 錢包已驗證
    - 本回合還沒投過票

    異常對應：
        ValidationError -> 400
        DuplicateVoteError -> 409（附上 previous_vote）
        TransientStorageError / MissingActiveRoundError -> 503（請玩家重試）
    """
    try:
        result = await engine.cast_vote(vote_data.wallet_address, vote_data.color)

        return VoteResponse(
            message=f"Vote cast for {result.category.value.upper()}!",
            vote_data=VoteData(
                color=result.category,
                round_number=result.round_number,
                time_left=result.remaining_time,
                current_phase=result.phase,
                votes=result.tally,
                total_voters=result.total_voters,
            ),
        )

    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={"error": str(e), "time_left": engine.remaining_time()}
        )
    except DuplicateVoteError as e:
        raise HTTPException(
            status_code=409,
            detail={"error": "Already voted this round", "previous_vote": e.previous_vote.value}
        )
    except (TransientStorageError, MissingActiveRoundError) as e:
        logger.warning(f"Vote by {vote_data.wallet_address} not recorded: {e}")
        raise HTTPException(status_code=503, detail="Vote could not be recorded, please retry")
    except Exception as e:
        logger.error(f"Failed to cast vote: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/participants", response_model=ParticipantsResponse)
async def get_participants(
    engine: RoundEngine = Depends(get_engine),
    repository: RoundRepository = Depends(get_repository)
):
    """本回合的票數與最近 20 張票"""
    try:
        active_round = engine.active_round
        if active_round is None:
            raise HTTPException(status_code=404, detail="No active round")

        return await run_in_threadpool(get_participants_summary, repository, active_round)

    except HTTPException:
        raise
    except TransientStorageError:
        raise HTTPException(status_code=503, detail="Storage unavailable")
    except Exception as e:
        logger.error(f"Failed to get participants: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/history", response_model=HistoryResponse)
def get_history(repository: RoundRepository = Depends(get_repository)):
    """最近 50 個已完成的回合"""
    try:
        rounds = get_round_history(repository, limit=50)
        return HistoryResponse(rounds=rounds, total_rounds=len(rounds))

    except TransientStorageError:
        raise HTTPException(status_code=503, detail="Storage unavailable")
    except Exception as e:
        logger.error(f"Failed to get history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/health")
def health(engine: RoundEngine = Depends(get_engine)):
    active_round = engine.active_round
    return {
        "success": True,
        "status": "ok" if engine.is_running and active_round else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "current_round": active_round.round_number if active_round else None,
        "current_phase": active_round.phase.value if active_round else None,
        "phase_time_left": engine.remaining_time(),
        "connected_clients": engine.broadcaster.subscriber_count,
    }
