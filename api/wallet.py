"""
Wallet API Endpoints

存提款金額由外部（錢包 / 區塊鏈）驗證後才送進來，這裡只負責記帳
"""
from fastapi import APIRouter, Depends
import logging

from api.lobbies import to_http_exception
from core.ledger import Ledger
from dependencies import get_ledger
from schemas import DepositRequest, WalletStateResponse, WithdrawRequest

router = APIRouter(prefix="/api/wallet", tags=["wallet"])
logger = logging.getLogger(__name__)


@router.get("/state/{user_id}", response_model=WalletStateResponse)
def get_wallet_state(user_id: str, ledger: Ledger = Depends(get_ledger)):
    """餘額 + 最近的交易紀錄（新到舊）"""
    try:
        return WalletStateResponse.from_state(ledger.get_wallet(user_id))
    except Exception as e:
        raise to_http_exception(e, "get wallet state")


@router.post("/deposit", response_model=WalletStateResponse)
def record_deposit(data: DepositRequest, ledger: Ledger = Depends(get_ledger)):
    try:
        state = ledger.record_deposit(data.user_id, data.amount, data.username, data.tx_ref)
        return WalletStateResponse.from_state(state)
    except Exception as e:
        raise to_http_exception(e, "record deposit")


@router.post("/withdraw", response_model=WalletStateResponse)
def record_withdraw(data: WithdrawRequest, ledger: Ledger = Depends(get_ledger)):
    """
    提款（只扣內部餘額並建立 pending 紀錄）

    可用餘額 = 餘額 - 進行中房間的押金
    """
    try:
        state = ledger.record_withdraw(data.user_id, data.amount, data.username, data.to_address)
        logger.info(f"Withdraw request recorded for user {data.user_id}")
        return WalletStateResponse.from_state(state)
    except Exception as e:
        raise to_http_exception(e, "record withdraw")
