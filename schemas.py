"""
API request / response schemas

金額一律用 Decimal，JSON 輸出為字串，避免浮點誤差
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel

from models import (
    EntryKind,
    EntryStatus,
    GameOutcome,
    LedgerEntry,
    Lobby,
    LobbyStatus,
    Player,
    StartMode,
    Visibility,
    WalletState,
)


# ============ Requests ============

class LobbyCreate(BaseModel):
    user_id: str
    display_name: Optional[str] = None
    wager: Decimal
    capacity: int = 2
    visibility: Visibility = Visibility.PUBLIC
    pin: Optional[str] = None
    avatar_url: Optional[str] = None


class LobbyJoin(BaseModel):
    user_id: str
    display_name: Optional[str] = None
    pin: Optional[str] = None
    avatar_url: Optional[str] = None


class LobbyAction(BaseModel):
    user_id: str


class DepositRequest(BaseModel):
    user_id: str
    username: Optional[str] = None
    amount: Decimal
    tx_ref: Optional[str] = None


class WithdrawRequest(BaseModel):
    user_id: str
    username: Optional[str] = None
    amount: Decimal
    to_address: Optional[str] = None


# ============ Lobby responses ============

class PlayerResponse(BaseModel):
    id: str
    display_name: str
    is_ready: bool
    last_roll: Optional[int] = None
    avatar_url: Optional[str] = None

    @classmethod
    def from_player(cls, player: Player) -> "PlayerResponse":
        return cls(
            id=player.id,
            display_name=player.display_name,
            is_ready=player.is_ready,
            last_roll=player.last_roll,
            avatar_url=player.avatar_url,
        )


class RollResponse(BaseModel):
    id: str
    display_name: str
    roll: int


class RoundResponse(BaseModel):
    round_number: int
    rolls: List[RollResponse]


class OutcomeResponse(BaseModel):
    id: str
    winner_id: str
    winning_roll: int
    per_player_final_roll: Dict[str, int]
    participants: List[str]
    rounds: List[RoundResponse]
    created_at: datetime

    @classmethod
    def from_outcome(cls, outcome: GameOutcome) -> "OutcomeResponse":
        return cls(
            id=outcome.id,
            winner_id=outcome.winner_id,
            winning_roll=outcome.winning_roll,
            per_player_final_roll=dict(outcome.per_player_final_roll),
            participants=list(outcome.participants),
            rounds=[
                RoundResponse(
                    round_number=r.round_number,
                    rolls=[
                        RollResponse(id=roll.player_id, display_name=roll.display_name, roll=roll.roll)
                        for roll in r.rolls
                    ],
                )
                for r in outcome.rounds
            ],
            created_at=outcome.created_at,
        )


class LobbySnapshot(BaseModel):
    id: str
    status: LobbyStatus
    creator_id: str
    wager: Decimal
    capacity: int
    start_mode: StartMode
    visibility: Visibility
    is_private: bool
    players: List[PlayerResponse]
    auto_start_at: Optional[datetime] = None
    outcome: Optional[OutcomeResponse] = None
    created_at: datetime
    finished_at: Optional[datetime] = None

    @classmethod
    def from_lobby(cls, lobby: Lobby) -> "LobbySnapshot":
        # PIN 永遠不回傳給客戶端
        return cls(
            id=lobby.id,
            status=lobby.status,
            creator_id=lobby.creator_id,
            wager=lobby.wager,
            capacity=lobby.capacity,
            start_mode=lobby.start_mode,
            visibility=lobby.visibility,
            is_private=lobby.visibility == Visibility.PRIVATE,
            players=[PlayerResponse.from_player(p) for p in lobby.players],
            auto_start_at=lobby.auto_start_at,
            outcome=OutcomeResponse.from_outcome(lobby.outcome) if lobby.outcome else None,
            created_at=lobby.created_at,
            finished_at=lobby.finished_at,
        )


class CancelResponse(BaseModel):
    ok: bool
    lobby_id: str


# ============ Wallet responses ============

class LedgerEntryResponse(BaseModel):
    id: str
    kind: EntryKind
    amount: Decimal
    currency: str
    status: EntryStatus
    created_at: datetime
    counterparty_tx_ref: Optional[str] = None
    lobby_id: Optional[str] = None
    to_address: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> "LedgerEntryResponse":
        return cls(
            id=entry.id,
            kind=entry.kind,
            amount=entry.amount,
            currency=entry.currency,
            status=entry.status,
            created_at=entry.created_at,
            counterparty_tx_ref=entry.counterparty_tx_ref,
            lobby_id=entry.lobby_id,
            to_address=entry.to_address,
        )


class WalletStateResponse(BaseModel):
    user_id: str
    username: Optional[str] = None
    balance: Decimal
    available: Decimal
    history: List[LedgerEntryResponse]

    @classmethod
    def from_state(cls, state: WalletState) -> "WalletStateResponse":
        return cls(
            user_id=state.user_id,
            username=state.username,
            balance=state.balance,
            available=state.available,
            history=[LedgerEntryResponse.from_entry(e) for e in state.history],
        )
