from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from database import Base, SessionLocal, settings as default_settings
from api import admin, game, wallets, websocket
from core.repository import RoundRepository
from core.round_engine import RoundEngine
from services.balance_service import SolanaBalanceClient
from services.eligibility_service import ParticipantEligibilityOracle, WalletVerificationService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(
    session_factory=None,
    settings=None,
    balance_client=None,
    rng=None,
    autotick: bool = True
) -> FastAPI:
    """
    建立 FastAPI app

    參數都可以替換（測試時傳入 in-memory SQLite、假的餘額 client、固定 seed 的 rng）
    """
    session_factory = session_factory or SessionLocal
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: 建立資料表，恢復或建立進行中的回合，啟動倒數
        Base.metadata.create_all(bind=session_factory.kw["bind"])

        repository = RoundRepository(session_factory)
        round_engine = RoundEngine(
            repository=repository,
            eligibility=ParticipantEligibilityOracle(repository),
            settings=settings,
            rng=rng,
        )
        app.state.repository = repository
        app.state.engine = round_engine
        app.state.wallet_service = WalletVerificationService(
            repository=repository,
            balance_client=balance_client or SolanaBalanceClient(
                settings.solana_rpc_url,
                timeout=settings.balance_timeout_seconds
            ),
            token_mint=settings.token_mint,
            min_token_balance=settings.min_token_balance,
        )

        await round_engine.start(autotick=autotick)
        logger.info(
            f"⏰ Voting window: {settings.voting_window_seconds}s, "
            f"reveal window: {settings.reveal_window_seconds}s"
        )
        logger.info(f"🪙 Required token: {settings.token_mint} (min {settings.min_token_balance})")
        yield
        # Shutdown: 停止 consumer 和 ticker
        await round_engine.shutdown()

    app = FastAPI(
        title="Red/Black Wheel API",
        description="Backend API for the timed red/black voting wheel",
        version="1.0.0",
        lifespan=lifespan
    )

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(game.router)
    app.include_router(wallets.router)
    app.include_router(admin.router)
    app.include_router(websocket.router)

    @app.get("/")
    def root():
        return {"message": "Red/Black Wheel API", "status": "ok"}

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=5500)
