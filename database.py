from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache, wraps
from typing import List
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./wheel_game.db"

    # 回合時間設定（秒）
    voting_window_seconds: int = 300
    reveal_window_seconds: int = 5
    heartbeat_interval_seconds: int = 5
    tick_interval_seconds: float = 1.0

    # 錢包資格驗證
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    token_mint: str = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
    min_token_balance: int = 1_000_000
    balance_timeout_seconds: float = 10.0

    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://localhost:5502",
    ]
    subscriber_queue_size: int = 32

    model_config = SettingsConfigDict(env_file=".env")


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()


def build_session_factory(database_url: str) -> sessionmaker:
    """
    依照 database_url 建立 Session factory

    SQLite 需要特殊設定：connect_args={"check_same_thread": False}
    Engine 的 serialized consumer 與 API thread 會共用同一個資料庫。
    In-memory SQLite（"sqlite://"）使用 StaticPool，讓所有連線看到同一份資料。
    """
    kwargs = {"pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    db_engine = create_engine(database_url, **kwargs)
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


SessionLocal = build_session_factory(settings.database_url)
Base = declarative_base()


def transactional(func):
    """
    Transaction decorator：確保資料庫操作的原子性

    使用方式：
        @transactional
        def save_something(db: Session, ...):
            # 所有 DB 操作都在一個 transaction 內
            db.add(obj)
            # 不需要手動 commit，decorator 會處理

    如果函式內發生異常：
        - 自動 rollback
        - 異常會被重新拋出（讓上層處理）

    注意：
        - 必須有一個 db: Session 參數（位置參數或 db=...）
        - 不要在函式內手動 commit（decorator 會處理）
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        # 找出 db session（可能在 args 或 kwargs）
        db = kwargs.get('db')
        if db is None:
            db = next((arg for arg in args if isinstance(arg, Session)), None)

        if db is None:
            raise ValueError(
                f"@transactional requires a 'db: Session' argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper
