from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from core.ledger import Ledger
from core.lobby_manager import LobbyManager
from core.lobby_registry import LobbyRegistry
from dependencies import get_ledger, get_lobby_manager
from main import app
from services.dice_service import SystemDie
from services.payout_service import RakePolicy
from services.settlement_service import SettlementService
from tests.helpers import FakeClock


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def ledger(clock):
    return Ledger(currency="TON", history_limit=100, clock=clock)


@pytest.fixture()
def make_manager(ledger, clock):
    def _make(die=None, policy=None, **kwargs):
        policy = policy or RakePolicy(Decimal("0.05"))
        kwargs.setdefault("countdown_seconds", 10)
        return LobbyManager(
            registry=LobbyRegistry(),
            ledger=ledger,
            settlement=SettlementService(ledger, policy),
            die=die or SystemDie(),
            clock=clock,
            **kwargs,
        )
    return _make


@pytest.fixture()
def manager(make_manager):
    return make_manager()


@pytest.fixture()
def fund(ledger):
    def _fund(user_id, amount="10"):
        ledger.record_deposit(user_id, Decimal(amount), username=user_id.title())
    return _fund


@pytest.fixture()
def client(ledger, manager):
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_lobby_manager] = lambda: manager
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
