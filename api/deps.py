"""
FastAPI dependencies：從 app.state 取出 lifespan 建立的物件
"""
from fastapi import Request

from core.repository import RoundRepository
from core.round_engine import RoundEngine
from services.eligibility_service import WalletVerificationService


def get_engine(request: Request) -> RoundEngine:
    return request.app.state.engine


def get_repository(request: Request) -> RoundRepository:
    return request.app.state.repository


def get_wallet_service(request: Request) -> WalletVerificationService:
    return request.app.state.wallet_service
