"""
開獎服務：決定獲勝顏色與贏家

純計算邏輯，不負責狀態轉換（由 RoundEngine 負責）

規則：
1. 投票結束時，以 50/50 機率選出獲勝顏色，與票數無關
   （票數只決定誰「有資格」得獎，不影響哪個顏色獲勝）
2. 揭曉結束時，從投給獲勝顏色的玩家中均勻隨機選出一位贏家
3. 沒有人投獲勝顏色 → 沒有贏家（None）
"""
import random
from typing import Optional, Sequence

from models import Category
from core.repository import VoteRecord


def choose_category(rng: random.Random) -> Category:
    """
    隨機選出獲勝顏色（各 0.5 機率）

    參數：
        rng: 亂數產生器（測試時可以傳入固定 seed 的 random.Random）

    返回：
        Category.RED 或 Category.BLACK
    """
    return Category.RED if rng.random() < 0.5 else Category.BLACK


def choose_winner(
    votes: Sequence[VoteRecord],
    chosen_category: Category,
    rng: random.Random
) -> Optional[str]:
    """
    從獲勝顏色的投票者中均勻隨機選出贏家

    參數：
        votes: 本回合投給 chosen_category 的所有票
        chosen_category: 獲勝顏色
        rng: 亂數產生器

    返回：
        贏家的 voter_id；沒有符合資格的票時返回 None

    異常：
        ValueError: votes 中混入其他顏色的票（贏家絕不能來自輸的顏色）
    """
    for vote in votes:
        if vote.category != chosen_category:
            raise ValueError(
                f"Vote by {vote.voter_id} is {vote.category.value}, "
                f"not the chosen {chosen_category.value}"
            )

    if not votes:
        return None

    return votes[rng.randrange(len(votes))].voter_id
