"""
資格服務：錢包驗證與投票資格

流程：
1. 玩家呼叫 verify_wallet → 查鏈上餘額 → 足夠就記錄為已驗證 Participant
2. 投票時 RoundEngine 呼叫 is_eligible → 只查 Participant 表（冪等、可重複呼叫）
"""
import asyncio
import logging

from core.exceptions import InsufficientBalance, ValidationError
from core.repository import RoundRepository
from services.balance_service import SolanaBalanceClient, is_valid_wallet_address

logger = logging.getLogger(__name__)


class ParticipantEligibilityOracle:
    """已驗證的錢包才有投票資格"""

    def __init__(self, repository: RoundRepository):
        self._repository = repository

    async def is_eligible(self, voter_id: str) -> bool:
        return await asyncio.to_thread(self._repository.is_verified_participant, voter_id)


class WalletVerificationService:

    def __init__(
        self,
        repository: RoundRepository,
        balance_client: SolanaBalanceClient,
        token_mint: str,
        min_token_balance: int
    ):
        self._repository = repository
        self._balance_client = balance_client
        self._token_mint = token_mint
        self._min_token_balance = min_token_balance

    async def verify_wallet(self, wallet_address: str) -> int:
        """
        驗證錢包餘額並記錄 Participant

        返回：
            代幣餘額

        異常：
            ValidationError: 地址格式錯誤
            InsufficientBalance: 餘額不足（不會記錄為已驗證）
            BalanceLookupError: 查詢餘額失敗
            TransientStorageError: 寫入 Participant 失敗
        """
        if not is_valid_wallet_address(wallet_address):
            raise ValidationError("Invalid Solana wallet address")

        balance = await self._balance_client.get_token_balance(wallet_address, self._token_mint)

        if balance < self._min_token_balance:
            logger.info(
                f"Wallet {wallet_address} rejected: balance {balance} < {self._min_token_balance}"
            )
            raise InsufficientBalance(balance, self._min_token_balance)

        await asyncio.to_thread(
            self._repository.save_participant, wallet_address, balance, True
        )
        logger.info(f"Wallet {wallet_address} verified with balance {balance}")
        return balance
