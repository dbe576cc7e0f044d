"""
Wallet API Endpoints

職責：
1. 驗證錢包餘額（通過後才能投票）
"""
from fastapi import APIRouter, Depends, HTTPException
import logging

from api.deps import get_engine, get_wallet_service
from core.exceptions import (
    BalanceLookupError,
    InsufficientBalance,
    TransientStorageError,
    ValidationError,
)
from core.round_engine import RoundEngine
from models import RoundPhase
from schemas import WalletVerify, WalletVerifyResponse
from services.eligibility_service import WalletVerificationService

router = APIRouter(prefix="/api", tags=["wallets"])
logger = logging.getLogger(__name__)


@router.post("/verify-wallet", response_model=WalletVerifyResponse)
async def verify_wallet(
    wallet_data: WalletVerify,
    engine: RoundEngine = Depends(get_engine),
    wallet_service: WalletVerificationService = Depends(get_wallet_service)
):
    """
    驗證錢包（只檢查代幣餘額）

    流程：
    1. 檢查地址格式
    2. 查詢鏈上餘額
    3. 餘額足夠 → 記錄為已驗證 Participant
    4. 返回目前階段，讓前端決定是否顯示投票按鈕
    """
    try:
        balance = await wallet_service.verify_wallet(wallet_data.wallet_address)

        snapshot = engine.get_snapshot()
        phase = snapshot.game_state.current_phase
        hint = "You can now vote!" if phase == RoundPhase.VOTING else "Wait for next voting phase."

        return WalletVerifyResponse(
            balance=balance,
            is_verified=True,
            current_phase=phase,
            time_left=engine.remaining_time(),
            message=f"Wallet verified! You have {balance // 1_000_000}M tokens. {hint}",
        )

    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InsufficientBalance as e:
        raise HTTPException(
            status_code=400,
            detail={
                "error": f"Insufficient token balance. Required: {e.required // 1_000_000}M tokens",
                "balance": e.balance,
                "required": e.required,
            }
        )
    except (BalanceLookupError, TransientStorageError) as e:
        logger.warning(f"Wallet verification unavailable: {e}")
        raise HTTPException(status_code=503, detail="Verification temporarily unavailable")
    except Exception as e:
        logger.error(f"Failed to verify wallet: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
