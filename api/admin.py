"""
Admin API Endpoints

職責：
1. 設定本回合獎金
2. 標記獎金已付款
3. 提前結束目前階段

所有操作都經過 RoundEngine 的佇列，不會跟回合切換互相競爭
"""
from fastapi import APIRouter, Depends, HTTPException
import logging

from api.deps import get_engine
from core.exceptions import (
    MissingActiveRoundError,
    RoundNotFound,
    TransientStorageError,
    ValidationError,
)
from core.round_engine import RoundEngine
from schemas import AdminResponse, MarkPaidResponse, MarkPaidSubmit, PrizeSubmit

router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = logging.getLogger(__name__)


@router.post("/set-prize", response_model=AdminResponse)
async def set_prize(prize_data: PrizeSubmit, engine: RoundEngine = Depends(get_engine)):
    """設定目前回合的獎金（必須 > 0）"""
    try:
        round_record = await engine.set_prize_amount(prize_data.prize_amount)
        return AdminResponse(
            message=(
                f"Prize amount set to {round_record.prize_amount} SOL "
                f"for round {round_record.round_number}"
            )
        )

    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except MissingActiveRoundError:
        raise HTTPException(status_code=404, detail="Current round not found")
    except TransientStorageError:
        raise HTTPException(status_code=503, detail="Storage unavailable, please retry")
    except Exception as e:
        logger.error(f"Failed to set prize: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/mark-paid", response_model=MarkPaidResponse)
async def mark_paid(paid_data: MarkPaidSubmit, engine: RoundEngine = Depends(get_engine)):
    """
    標記獎金已付款

    前置條件：
    - 回合存在且有贏家
    - 尚未標記過

    效果：
    - total_prizes_given 加上該回合獎金
    - last_prize_amount 更新
    """
    try:
        round_record = await engine.mark_prize_paid(paid_data.round_number)
        return MarkPaidResponse(
            message=f"Prize payment recorded for round {round_record.round_number}",
            winner=round_record.winner,
            amount=round_record.prize_amount,
        )

    except RoundNotFound:
        raise HTTPException(status_code=404, detail="Round or winner not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransientStorageError:
        raise HTTPException(status_code=503, detail="Storage unavailable, please retry")
    except Exception as e:
        logger.error(f"Failed to mark prize paid: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/advance", response_model=AdminResponse)
async def force_advance(engine: RoundEngine = Depends(get_engine)):
    """
    提前結束目前階段（Host endpoint）

    用途：
    - 測試、展示時不想等完整的投票時間
    """
    try:
        round_record = await engine.force_advance()
        return AdminResponse(
            message=f"Round {round_record.round_number} is now {round_record.phase.value}"
        )

    except MissingActiveRoundError:
        raise HTTPException(status_code=404, detail="Current round not found")
    except TransientStorageError:
        raise HTTPException(status_code=503, detail="Storage unavailable, please retry")
    except Exception as e:
        logger.error(f"Failed to advance round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
