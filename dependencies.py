"""
FastAPI dependencies：提供 process 內唯一的 Ledger 與 LobbyManager

測試時用 app.dependency_overrides 換成全新的實例
"""
from functools import lru_cache

from config import get_settings
from core.ledger import Ledger
from core.lobby_manager import LobbyManager
from core.lobby_registry import LobbyRegistry
from services.payout_service import get_payout_policy
from services.settlement_service import SettlementService


@lru_cache()
def get_ledger() -> Ledger:
    settings = get_settings()
    return Ledger(currency=settings.currency, history_limit=settings.history_limit)


@lru_cache()
def get_lobby_manager() -> LobbyManager:
    settings = get_settings()
    ledger = get_ledger()
    policy = get_payout_policy(settings.payout_policy, settings.house_fee_rate)
    return LobbyManager(
        registry=LobbyRegistry(),
        ledger=ledger,
        settlement=SettlementService(ledger, policy),
        countdown_seconds=settings.countdown_seconds,
        max_resolution_rounds=settings.max_resolution_rounds,
        finished_ttl_seconds=settings.finished_lobby_ttl_seconds,
    )
