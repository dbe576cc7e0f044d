"""
鏈上餘額服務：查詢錢包持有的代幣數量

只讀取餘額（getTokenAccountsByOwner），不需要任何私鑰
"""
import re
from typing import Optional
import logging

import httpx

from core.exceptions import BalanceLookupError

logger = logging.getLogger(__name__)

# Base58（不含 0、O、I、l），32 bytes 的公鑰編碼後是 32-44 個字元
_WALLET_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def is_valid_wallet_address(address: Optional[str]) -> bool:
    """
    檢查是否為合法的 Solana 錢包地址格式

    範例：
        is_valid_wallet_address("DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263") -> True
        is_valid_wallet_address("0xabc") -> False
    """
    return bool(address) and bool(_WALLET_PATTERN.match(address))


class SolanaBalanceClient:
    """Solana JSON-RPC client（httpx）"""

    def __init__(self, rpc_url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._rpc_url = rpc_url
        self._timeout = timeout
        self._transport = transport

    async def get_token_balance(self, wallet_address: str, token_mint: str) -> int:
        """
        查詢錢包在某個 mint 的代幣餘額（最小單位）

        返回：
            餘額；沒有該代幣帳戶時返回 0

        異常：
            BalanceLookupError: 網路錯誤、HTTP 錯誤或 RPC 回傳 error
        """
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getTokenAccountsByOwner",
            "params": [
                wallet_address,
                {"mint": token_mint},
                {"encoding": "jsonParsed"},
            ],
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._rpc_url, json=payload)
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Balance lookup failed for {wallet_address}: {e}", exc_info=True)
            raise BalanceLookupError(f"Balance lookup failed: {e}") from e

        if "error" in body:
            raise BalanceLookupError(f"RPC error: {body['error'].get('message', body['error'])}")

        accounts = body.get("result", {}).get("value", [])
        if not accounts:
            return 0

        try:
            amount = accounts[0]["account"]["data"]["parsed"]["info"]["tokenAmount"]["amount"]
            return int(amount)
        except (KeyError, TypeError, ValueError) as e:
            raise BalanceLookupError(f"Unexpected RPC response shape: {e}") from e
