"""
狀態機：集中管理 Round 的階段轉換規則

合法轉換：
    VOTING -> REVEALING -> COMPLETED

COMPLETED 是該回合的終點，Engine 會立刻開新回合，
所以整個系統沒有終止狀態。
"""
from models import RoundPhase
from core.exceptions import InvalidStateTransition


class RoundStateMachine:
    """Round 階段轉換規則"""

    TRANSITIONS = {
        RoundPhase.VOTING: RoundPhase.REVEALING,
        RoundPhase.REVEALING: RoundPhase.COMPLETED,
    }

    @classmethod
    def next_phase(cls, current: RoundPhase) -> RoundPhase:
        """
        取得下一個階段

        異常：
            InvalidStateTransition: current 已經是 COMPLETED
        """
        if current not in cls.TRANSITIONS:
            raise InvalidStateTransition(f"Round in {current.value} has no next phase")
        return cls.TRANSITIONS[current]

    @classmethod
    def validate(cls, current: RoundPhase, target: RoundPhase) -> None:
        """
        檢查 current -> target 是否合法

        異常：
            InvalidStateTransition: 不合法的轉換（例如跳過 REVEALING、倒退）
        """
        if cls.TRANSITIONS.get(current) != target:
            raise InvalidStateTransition(
                f"Cannot transition round from {current.value} to {target.value}"
            )
