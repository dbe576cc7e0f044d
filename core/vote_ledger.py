"""
Vote Ledger：進行中回合的票數統計與去重

職責：
1. 檢查投票前置條件（回合、階段、顏色、重複投票）
2. 計入已寫入資料庫的 Vote，更新 Round 的票數
3. 投票結束（freeze）後拒絕所有投票

並發：
    Ledger 只處理記憶體中的狀態，不做任何 I/O。
    RoundEngine 先寫入 Vote（資料庫的 unique constraint 是原子的去重步驟），
    再透過 serialized consumer 呼叫 record()，所以計入是單一步驟
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union
import logging

from models import Category, RoundPhase
from core.repository import RoundRecord, VoteRecord, empty_tally
from core.exceptions import DuplicateVoteError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class VoteReceipt:
    round_number: int
    category: Category
    tally: Dict[Category, int]
    total_voters: int


def parse_category(value: Union[str, Category]) -> Category:
    try:
        return Category(value)
    except ValueError:
        raise ValidationError(
            f"Invalid vote data. Choose one of: {', '.join(c.value for c in Category)}"
        )


class VoteLedger:
    """單一回合的投票帳本"""

    def __init__(self):
        self._round: Optional[RoundRecord] = None
        self._votes: Dict[str, VoteRecord] = {}
        self._frozen = False

    def open(self, round_record: RoundRecord, votes: Iterable[VoteRecord] = ()) -> None:
        """
        綁定到一個回合

        票數從已寫入的 Vote 重新計算，
        修正 crash 時「Vote 已寫入但 Round 票數還沒更新」的部分寫入
        """
        self._round = round_record
        self._votes = {}
        self._frozen = round_record.phase != RoundPhase.VOTING
        tally = empty_tally()
        for vote in votes:
            if vote.round_number != round_record.round_number:
                continue
            self._votes[vote.voter_id] = vote
            tally[vote.category] += 1
        round_record.tally = tally

    def rebind(self, round_record: RoundRecord) -> None:
        """同一回合的新版本（階段轉換、設定獎金後），保留已記錄的投票者"""
        if self._round is not None and self._round.round_number != round_record.round_number:
            raise ValueError(
                f"Ledger is open for round {self._round.round_number}, "
                f"got round {round_record.round_number}"
            )
        self._round = round_record

    @property
    def round_number(self) -> Optional[int]:
        return self._round.round_number if self._round else None

    def tally(self) -> Dict[Category, int]:
        if self._round is None:
            return empty_tally()
        return dict(self._round.tally)

    def previous_vote(self, voter_id: str) -> Optional[Category]:
        vote = self._votes.get(voter_id)
        return vote.category if vote else None

    def votes_for(self, category: Category) -> List[VoteRecord]:
        """投給 category 的票，依計入順序"""
        return [vote for vote in self._votes.values() if vote.category == category]

    def check(self, voter_id: str, category: Union[str, Category], round_number: int) -> Category:
        """
        投票前置條件（依序檢查，第一個失敗就回報）：
        1. round_number 是進行中回合，且 phase = VOTING
        2. category 是合法顏色
        3. 玩家本回合還沒投過票

        返回：
            解析後的 Category

        異常：
            ValidationError: 回合不對、不在投票階段、顏色不合法
            DuplicateVoteError: 已經投過票（附上之前的選擇）
        """
        current = self._round
        if current is None or current.round_number != round_number:
            raise ValidationError(
                f"Round {round_number} is not the active round"
            )
        if self._frozen or current.phase != RoundPhase.VOTING:
            raise ValidationError(
                f"Voting is not active. Current phase: {current.phase.value}"
            )

        category = parse_category(category)

        previous = self.previous_vote(voter_id)
        if previous is not None:
            raise DuplicateVoteError(voter_id, round_number, previous)
        return category

    def record(self, vote: VoteRecord) -> VoteReceipt:
        """
        計入一張已寫入的票（核心邏輯）

        前置條件在這裡重新檢查一次：寫入期間投票可能已經結束

        效果：
            票數 +1、加入投票者
        """
        category = self.check(vote.voter_id, vote.category, vote.round_number)

        self._votes[vote.voter_id] = vote
        self._round.tally[category] += 1

        logger.info(
            f"Vote accepted: {vote.voter_id} -> {category.value} in round {vote.round_number} "
            f"(red={self._round.tally[Category.RED]}, black={self._round.tally[Category.BLACK]})"
        )

        return VoteReceipt(
            round_number=vote.round_number,
            category=category,
            tally=self.tally(),
            total_voters=len(self._votes),
        )

    def freeze(self) -> None:
        """投票結束：票數凍結，之後 check / record 一律拒絕"""
        self._frozen = True
        logger.info(
            f"Ledger frozen for round {self.round_number} with {len(self._votes)} voters"
        )
