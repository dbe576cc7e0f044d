"""
並發控制工具

Engine 本身是單一寫入者（所有變更經過同一個佇列），
但 API 的唯讀查詢和管理工具仍可能同時存取資料庫。
寫入 Round / GameState 前先用 SELECT ... FOR UPDATE 鎖定該列（悲觀鎖），
SQLite 會忽略 FOR UPDATE，改由資料庫層級的寫入鎖保護。
"""
from sqlalchemy.orm import Session, Query

from models import Round, GameState


def with_round_lock(round_number: int, db: Session) -> Query:
    """
    鎖定一個 Round（行級鎖）

    使用場景：
    - 更新回合的階段、票數、贏家
    - 管理員設定獎金、標記已付款

    範例：
        round_obj = with_round_lock(3, db).first()
        if round_obj:
            round_obj.prize_amount = 1.5

    參數：
        round_number: 回合數
        db: SQLAlchemy Session

    返回：
        Query object（需要呼叫 .first() 或 .one() 來取得結果）
    """
    return db.query(Round).filter(
        Round.round_number == round_number
    ).with_for_update(nowait=False)


def with_game_state_lock(db: Session) -> Query:
    """
    鎖定 GameState（全域只有一列）

    參數：
        db: SQLAlchemy Session

    返回：
        Query object
    """
    return db.query(GameState).with_for_update(nowait=False)
