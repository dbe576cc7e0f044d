"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理
"""


class WheelGameException(Exception):
    """所有遊戲異常的基類"""
    pass


# ============ 投票相關異常 ============

class ValidationError(WheelGameException):
    """
    投票或管理操作不合法（顏色錯誤、錢包未驗證、回合不在投票階段...）

    回報給呼叫者，不改變狀態，不重試
    """
    pass


class DuplicateVoteError(WheelGameException):
    """玩家本回合已經投過票了"""
    def __init__(self, voter_id, round_number, previous_vote):
        self.voter_id = voter_id
        self.round_number = round_number
        self.previous_vote = previous_vote
        super().__init__(
            f"Voter {voter_id} already voted {previous_vote} in round {round_number}"
        )


# ============ 儲存相關異常 ============

class TransientStorageError(WheelGameException):
    """資料庫暫時性錯誤，操作視為失敗，呼叫者可以重試"""
    pass


# ============ Round 相關異常 ============

class RoundNotFound(WheelGameException):
    """回合不存在"""
    def __init__(self, round_number):
        self.round_number = round_number
        super().__init__(f"Round {round_number} not found")


class MissingActiveRoundError(WheelGameException):
    """沒有進行中的回合，而且無法建立新回合；停止接受投票"""
    pass


class AnomalousTimerError(WheelGameException):
    """計時器觸發時，目標回合或階段已經不是目前的狀態"""
    def __init__(self, expected_round, expected_phase, actual_round, actual_phase):
        self.expected_round = expected_round
        self.expected_phase = expected_phase
        self.actual_round = actual_round
        self.actual_phase = actual_phase
        super().__init__(
            f"Timer for round {expected_round} ({expected_phase}) fired while "
            f"active round is {actual_round} ({actual_phase})"
        )


# ============ 狀態轉換異常 ============

class InvalidStateTransition(WheelGameException):
    """非法的狀態轉換"""
    pass


# ============ 錢包驗證異常 ============

class InsufficientBalance(WheelGameException):
    """代幣餘額不足"""
    def __init__(self, balance, required):
        self.balance = balance
        self.required = required
        super().__init__(
            f"Insufficient token balance: {balance} < {required}"
        )


class BalanceLookupError(WheelGameException):
    """查詢鏈上餘額失敗（RPC 錯誤或網路問題）"""
    pass
