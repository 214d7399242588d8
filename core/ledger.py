"""
Ledger：每位使用者的餘額與交易紀錄

職責：
1. 存款 / 提款入帳
2. 賭注押金（hold）：加入房間時保留，離開或結算時釋放
3. 結算：每個 (lobby_id, outcome_id) 只入帳一次

原則：
- 紀錄只能追加（append-only），餘額 = 所有紀錄的加總
- 同一個使用者的修改一律在該使用者的鎖內完成
"""
import logging
import threading
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, Optional, Set, Tuple

from core.exceptions import (
    DuplicateTransaction,
    InsufficientFunds,
    InvalidAmount,
    MissingIdentity,
)
from core.locks import KeyedLocks
from models import (
    AMOUNT_QUANTUM,
    MAX_AMOUNT,
    EntryKind,
    EntryStatus,
    LedgerEntry,
    Wallet,
    WalletState,
)

logger = logging.getLogger(__name__)

SettlementKey = Tuple[str, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_amount(amount, error=InvalidAmount) -> Decimal:
    """
    轉成 Decimal 並確認是有限的正數，且不超過金額精度與上限

    參數：
        amount: 使用者輸入的金額
        error: 驗證失敗時拋出的異常類別（賭注用 InvalidWager）

    異常：
        InvalidAmount: 非數字、NaN/Infinity、<= 0、比 nanoton 更細或超過上限
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise error(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise error(f"Amount must be greater than zero, got {amount}")
    if value > MAX_AMOUNT:
        raise error(f"Amount must not exceed {MAX_AMOUNT}, got {amount}")
    if value != value.quantize(AMOUNT_QUANTUM):
        raise error(f"Amount has more precision than {AMOUNT_QUANTUM}, got {amount}")
    return value


class Ledger:
    """In-memory 帳本（單一 process）"""

    def __init__(
        self,
        currency: str = "TON",
        history_limit: int = 100,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.currency = currency
        self.history_limit = history_limit
        self._clock = clock
        self._wallets: Dict[str, Wallet] = {}
        self._guard = threading.Lock()
        self._user_locks = KeyedLocks()
        self._settled: Dict[SettlementKey, Tuple[LedgerEntry, ...]] = {}
        self._tx_refs: Set[str] = set()

    # ============ 查詢 ============

    def get_wallet(self, user_id: str) -> WalletState:
        """
        取得錢包狀態（餘額 + 最新的交易紀錄）

        未知的使用者回傳餘額 0 的空錢包，不會因此建立錢包或使用者鎖
        """
        if self._existing(user_id) is None:
            return WalletState(
                user_id=user_id,
                username=None,
                balance=Decimal("0"),
                available=Decimal("0"),
                history=(),
            )

        with self._user_locks.hold(user_id):
            wallet = self._wallets[user_id]
            history = tuple(reversed(wallet.entries))[: self.history_limit]
            return WalletState(
                user_id=user_id,
                username=wallet.username,
                balance=wallet.balance,
                available=wallet.available,
                history=history,
            )

    def balance(self, user_id: str) -> Decimal:
        return self.get_wallet(user_id).balance

    def available(self, user_id: str) -> Decimal:
        return self.get_wallet(user_id).available

    def is_settled(self, key: SettlementKey) -> bool:
        with self._guard:
            return key in self._settled

    # ============ 存提款 ============

    def record_deposit(
        self,
        user_id: str,
        amount,
        username: Optional[str] = None,
        tx_ref: Optional[str] = None,
    ) -> WalletState:
        """
        記錄一筆已由外部驗證過的存款

        異常：
            InvalidAmount: 金額 <= 0
            DuplicateTransaction: tx_ref 已經入帳過
        """
        value = validate_amount(amount)
        self._require_identity(user_id)

        with self._user_locks.hold(user_id):
            with self._guard:
                if tx_ref and tx_ref in self._tx_refs:
                    raise DuplicateTransaction(f"Transaction {tx_ref} was already credited")
                if tx_ref:
                    self._tx_refs.add(tx_ref)

            wallet = self._get_or_create(user_id, username)
            wallet.entries.append(self._entry(
                user_id, EntryKind.DEPOSIT, value, counterparty_tx_ref=tx_ref,
            ))
            logger.info(f"Deposit {value} {self.currency} for user {user_id} (tx={tx_ref})")

        return self.get_wallet(user_id)

    def record_withdraw(
        self,
        user_id: str,
        amount,
        username: Optional[str] = None,
        to_address: Optional[str] = None,
    ) -> WalletState:
        """
        扣除提款金額並留下 pending 紀錄（實際匯款由外部處理）

        異常：
            InvalidAmount: 金額 <= 0
            InsufficientFunds: 可用餘額（餘額扣掉押金）不足
        """
        value = validate_amount(amount)
        self._require_identity(user_id)
        if self._existing(user_id) is None:
            raise InsufficientFunds(user_id, value, Decimal("0"))

        with self._user_locks.hold(user_id):
            wallet = self._get_or_create(user_id, username)
            if wallet.available < value:
                raise InsufficientFunds(user_id, value, wallet.available)

            wallet.entries.append(self._entry(
                user_id, EntryKind.WITHDRAW, value,
                status=EntryStatus.PENDING, to_address=to_address,
            ))
            logger.info(f"Withdraw {value} {self.currency} for user {user_id} to {to_address}")

        return self.get_wallet(user_id)

    # ============ 押金 ============

    def hold(self, user_id: str, lobby_id: str, amount: Decimal) -> None:
        """
        為某個房間保留賭注

        異常：
            InsufficientFunds: 可用餘額 < amount（沒有錢包的使用者一律不足）
        """
        if self._existing(user_id) is None:
            raise InsufficientFunds(user_id, amount, Decimal("0"))

        with self._user_locks.hold(user_id):
            wallet = self._wallets[user_id]
            if lobby_id in wallet.holds:
                return
            if wallet.available < amount:
                raise InsufficientFunds(user_id, amount, wallet.available)
            wallet.holds[lobby_id] = amount

    def release(self, user_id: str, lobby_id: str) -> None:
        if self._existing(user_id) is None:
            return
        with self._user_locks.hold(user_id):
            wallet = self._wallets.get(user_id)
            if wallet is not None:
                wallet.holds.pop(lobby_id, None)

    # ============ 結算 ============

    def apply_settlement(
        self,
        key: SettlementKey,
        deltas: Dict[str, Decimal],
    ) -> Tuple[LedgerEntry, ...]:
        """
        套用一次結算：每位參與者追加一筆 bet_win / bet_loss

        冪等：同一個 key 第二次呼叫直接回傳第一次的紀錄，不會重複扣款。
        所有參與者的鎖依序取得後才寫入，寫入期間其他人看不到一半的結果。

        參數：
            key: (lobby_id, outcome_id)
            deltas: user_id -> 餘額變化（正數為贏，負數為輸）

        返回：
            這次結算的 LedgerEntry（每位參與者一筆）
        """
        lobby_id, outcome_id = key

        with self._user_locks.hold_many(deltas.keys()):
            with self._guard:
                existing = self._settled.get(key)
            if existing is not None:
                logger.warning(f"Settlement {key} already applied, skipping")
                return existing

            entries = []
            for user_id, delta in deltas.items():
                if delta >= 0:
                    kind = EntryKind.BET_WIN
                else:
                    kind = EntryKind.BET_LOSS
                entries.append(self._entry(
                    user_id, kind, abs(delta),
                    lobby_id=lobby_id, counterparty_tx_ref=outcome_id,
                ))

            for entry in entries:
                wallet = self._get_or_create(entry.user_id)
                wallet.entries.append(entry)
                wallet.holds.pop(lobby_id, None)

            result = tuple(entries)
            with self._guard:
                self._settled[key] = result

        logger.info(f"Settled lobby {lobby_id} outcome {outcome_id}: {deltas}")
        return result

    # ============ 內部 ============

    def _existing(self, user_id: str) -> Optional[Wallet]:
        with self._guard:
            return self._wallets.get(user_id)

    def _get_or_create(self, user_id: str, username: Optional[str] = None) -> Wallet:
        with self._guard:
            wallet = self._wallets.get(user_id)
            if wallet is None:
                wallet = Wallet(user_id=user_id, username=username)
                self._wallets[user_id] = wallet
            elif username and wallet.username != username:
                wallet.username = username
            return wallet

    def _entry(self, user_id: str, kind: EntryKind, amount: Decimal, **kwargs) -> LedgerEntry:
        return LedgerEntry(
            id=uuid.uuid4().hex,
            user_id=user_id,
            kind=kind,
            amount=amount,
            currency=self.currency,
            created_at=self._clock(),
            **kwargs,
        )

    @staticmethod
    def _require_identity(user_id: str) -> None:
        if not user_id or not str(user_id).strip():
            raise MissingIdentity("user_id is required")
