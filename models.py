"""
Domain models

純記憶體的資料結構，不綁定任何 transport 或儲存方式。
狀態欄位只能透過 core 層（LobbyManager / LobbyStateMachine / Ledger）修改。
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

# 金額的最小單位（TON 的 nanoton），所有使用者輸入的金額都不能比這更細
AMOUNT_QUANTUM = Decimal("0.000000001")
MAX_AMOUNT = Decimal("1000000000")


class LobbyStatus(str, enum.Enum):
    OPEN = "open"
    COUNTDOWN = "countdown"
    RESOLVING = "resolving"
    FINISHED = "finished"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (LobbyStatus.FINISHED, LobbyStatus.CANCELLED)


class Visibility(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class StartMode(str, enum.Enum):
    # 兩人房：坐滿後倒數自動開局
    AUTO_COUNTDOWN = "auto_countdown"
    # 多人房：房主在至少 2 人準備好後手動開局
    READY_CHECK = "ready_check"


class EntryKind(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BET_WIN = "bet_win"
    BET_LOSS = "bet_loss"

    @property
    def sign(self) -> int:
        if self in (EntryKind.DEPOSIT, EntryKind.BET_WIN):
            return 1
        return -1


class EntryStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    # 提款已從餘額扣除，但尚未實際匯出
    PENDING = "pending"


@dataclass
class Player:
    id: str
    display_name: str
    is_ready: bool = False
    last_roll: Optional[int] = None
    avatar_url: Optional[str] = None


@dataclass(frozen=True)
class RollRecord:
    player_id: str
    display_name: str
    roll: int


@dataclass(frozen=True)
class RoundSnapshot:
    """單一輪擲骰：這一輪所有競爭者的點數"""
    round_number: int
    rolls: Tuple[RollRecord, ...]

    @property
    def highest(self) -> int:
        return max(r.roll for r in self.rolls)


@dataclass(frozen=True)
class GameOutcome:
    id: str
    winner_id: str
    winning_roll: int
    per_player_final_roll: Dict[str, int]
    rounds: Tuple[RoundSnapshot, ...]
    participants: Tuple[str, ...]
    created_at: datetime


@dataclass
class Lobby:
    id: str
    creator_id: str
    wager: Decimal
    capacity: int
    visibility: Visibility
    created_at: datetime
    pin: Optional[str] = None
    status: LobbyStatus = LobbyStatus.OPEN
    players: List[Player] = field(default_factory=list)
    auto_start_at: Optional[datetime] = None
    outcome: Optional[GameOutcome] = None
    finished_at: Optional[datetime] = None

    @property
    def start_mode(self) -> StartMode:
        if self.capacity == 2:
            return StartMode.AUTO_COUNTDOWN
        return StartMode.READY_CHECK

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.capacity

    @property
    def creator(self) -> Optional[Player]:
        return self.find_player(self.creator_id)

    def find_player(self, user_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == user_id:
                return player
        return None

    def eligible_players(self) -> List[Player]:
        """
        可以參與擲骰的玩家

        - 兩人房：所有坐著的玩家
        - 多人房：房主 + 已準備的玩家
        """
        if self.start_mode == StartMode.AUTO_COUNTDOWN:
            return list(self.players)
        return [p for p in self.players if p.id == self.creator_id or p.is_ready]


@dataclass(frozen=True)
class LedgerEntry:
    id: str
    user_id: str
    kind: EntryKind
    amount: Decimal
    currency: str
    created_at: datetime
    status: EntryStatus = EntryStatus.CONFIRMED
    counterparty_tx_ref: Optional[str] = None
    lobby_id: Optional[str] = None
    to_address: Optional[str] = None

    @property
    def signed_amount(self) -> Decimal:
        return self.amount * self.kind.sign


@dataclass
class Wallet:
    user_id: str
    username: Optional[str] = None
    entries: List[LedgerEntry] = field(default_factory=list)
    # lobby_id -> 押在該房間的賭注
    holds: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def balance(self) -> Decimal:
        return sum((e.signed_amount for e in self.entries), Decimal("0"))

    @property
    def held(self) -> Decimal:
        return sum(self.holds.values(), Decimal("0"))

    @property
    def available(self) -> Decimal:
        return self.balance - self.held


@dataclass(frozen=True)
class WalletState:
    user_id: str
    username: Optional[str]
    balance: Decimal
    available: Decimal
    history: Tuple[LedgerEntry, ...]
