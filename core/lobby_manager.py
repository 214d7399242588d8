"""
Lobby Manager：管理 Lobby 的完整生命週期

職責：
1. 建立房間（房主自動入座）
2. 加入 / 離開 / 準備
3. 開始遊戲（擲骰 + 結算）
4. 取消房間
5. 查詢房間（順便推進到期的倒數）

原則：
- 所有狀態變更經過 LobbyStateMachine
- 每個操作都在該房間的鎖內完成，先驗證再修改，失敗時不留下半套狀態
- 回傳的是鎖內拍下的快照（deepcopy），呼叫者拿到的永遠是一致的狀態
"""
import copy
import logging
import re
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Iterator, List, Optional, Sequence

from core.exceptions import (
    CreatorCannotLeave,
    DiceGameException,
    Forbidden,
    InternalInvariantViolation,
    InvalidCapacity,
    InvalidPin,
    InvalidWager,
    LobbyFull,
    LobbyNotFound,
    LobbyNotOpen,
    MissingIdentity,
    NotCancellable,
    NotEnoughReady,
    NotInLobby,
    WrongPin,
)
from core.ledger import Ledger, validate_amount
from core.lobby_registry import LobbyFilter, LobbyRegistry
from core.locks import KeyedLocks
from core.state_machine import LobbyStateMachine
from models import Lobby, LobbyStatus, Player, StartMode, Visibility
from services.dice_service import DieRoller, SystemDie
from services.resolution_service import DEFAULT_MAX_ROUNDS, resolve_round
from services.settlement_service import SettlementService

logger = logging.getLogger(__name__)

ALLOWED_CAPACITIES = (2, 4)
# 只接受 ASCII 數字，搭配 fullmatch 使用（不接受結尾換行）
PIN_PATTERN = re.compile(r"[0-9]{4}")
DEFAULT_DISPLAY_NAME = "Player"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_wager(wager) -> Decimal:
    return validate_amount(wager, error=InvalidWager)


def _require_identity(user_id: str) -> str:
    if not user_id or not str(user_id).strip():
        raise MissingIdentity("user_id is required")
    return str(user_id)


class LobbyManager:
    """Lobby 生命週期管理器"""

    def __init__(
        self,
        registry: LobbyRegistry,
        ledger: Ledger,
        settlement: SettlementService,
        die: Optional[DieRoller] = None,
        countdown_seconds: int = 10,
        max_resolution_rounds: int = DEFAULT_MAX_ROUNDS,
        finished_ttl_seconds: int = 600,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.registry = registry
        self.ledger = ledger
        self.settlement = settlement
        self.die = die or SystemDie()
        self.countdown = timedelta(seconds=countdown_seconds)
        self.max_resolution_rounds = max_resolution_rounds
        self.finished_ttl = timedelta(seconds=finished_ttl_seconds)
        self._clock = clock
        self._locks = KeyedLocks()

    # ============ 建立 / 查詢 ============

    def create_lobby(
        self,
        creator_id: str,
        display_name: Optional[str],
        wager,
        capacity: int,
        visibility: Visibility = Visibility.PUBLIC,
        pin: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Lobby:
        """
        建立新房間（房主自動入座並視為已準備）

        流程：
        1. 驗證輸入（任何修改之前）
        2. 保留房主的賭注
        3. 登記到 Registry

        異常：
            MissingIdentity / InvalidWager / InvalidCapacity / InvalidPin
            InsufficientFunds: 房主可用餘額不足
        """
        creator_id = _require_identity(creator_id)
        value = _parse_wager(wager)
        if capacity not in ALLOWED_CAPACITIES:
            raise InvalidCapacity(f"Capacity must be one of {ALLOWED_CAPACITIES}, got {capacity}")

        visibility = Visibility(visibility)
        if visibility == Visibility.PRIVATE:
            if pin is None or not PIN_PATTERN.fullmatch(str(pin)):
                raise InvalidPin("Private lobbies need a 4-digit PIN")
            pin = str(pin)
        else:
            pin = None

        lobby_id = self.registry.next_id()
        self.ledger.hold(creator_id, lobby_id, value)

        lobby = Lobby(
            id=lobby_id,
            creator_id=creator_id,
            wager=value,
            capacity=capacity,
            visibility=visibility,
            pin=pin,
            created_at=self._clock(),
            players=[
                Player(
                    id=creator_id,
                    display_name=display_name or DEFAULT_DISPLAY_NAME,
                    is_ready=True,
                    avatar_url=avatar_url,
                )
            ],
        )
        self.registry.add(lobby)

        logger.info(
            f"Created lobby {lobby.id} by {creator_id} "
            f"(wager={value}, capacity={capacity}, visibility={visibility.value})"
        )
        return self._snapshot(lobby)

    def get_lobby(self, lobby_id: str) -> Lobby:
        with self._lobby_lock(lobby_id) as lobby:
            self._advance(lobby)
            return self._snapshot(lobby)

    def list_lobbies(self, lobby_filter: Optional[LobbyFilter] = None) -> List[Lobby]:
        """
        列出房間（依建立順序）

        每個房間都在自己的鎖內推進倒數再拍快照，篩選條件套用在快照上。
        單一房間推進失敗只記 log，仍然回傳它的快照，不影響其他房間。
        """
        for pruned_id in self.registry.prune_finished(self._clock() - self.finished_ttl):
            self._locks.discard(pruned_id)

        snapshots = []
        for lobby_id in self.registry.ids():
            try:
                with self._lobby_lock(lobby_id) as lobby:
                    try:
                        self._advance(lobby)
                    except DiceGameException as e:
                        logger.error(f"Failed to advance lobby {lobby.id} while listing: {e}")
                    snapshot = self._snapshot(lobby)
            except LobbyNotFound:
                # 取鎖期間被取消了
                continue
            if lobby_filter is None or lobby_filter.matches(snapshot):
                snapshots.append(snapshot)
        return snapshots

    # ============ 玩家操作 ============

    def join_lobby(
        self,
        lobby_id: str,
        user_id: str,
        display_name: Optional[str] = None,
        pin: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Lobby:
        """
        加入房間

        前置條件：
        1. 房間存在且狀態是 OPEN
        2. 尚未坐滿
        3. 私人房間 PIN 正確
        4. 可用餘額 >= 賭注

        已經在房內的玩家重複加入不算錯誤，直接回傳目前狀態。
        兩人房坐滿時進入 COUNTDOWN，auto_start_at = now + countdown。
        """
        user_id = _require_identity(user_id)

        with self._lobby_lock(lobby_id) as lobby:
            self._advance(lobby)

            if lobby.find_player(user_id) is not None:
                return self._snapshot(lobby)

            if lobby.status != LobbyStatus.OPEN:
                raise LobbyNotOpen(
                    f"Lobby {lobby.id} is not accepting players (status: {lobby.status.value})"
                )
            if lobby.is_full:
                raise LobbyFull(f"Lobby {lobby.id} is full ({lobby.capacity} players)")
            if lobby.visibility == Visibility.PRIVATE and str(pin or "") != lobby.pin:
                logger.warning(f"Wrong PIN for lobby {lobby.id} from user {user_id}")
                raise WrongPin(f"Wrong PIN for lobby {lobby.id}")

            self.ledger.hold(user_id, lobby.id, lobby.wager)
            lobby.players.append(Player(
                id=user_id,
                display_name=display_name or DEFAULT_DISPLAY_NAME,
                avatar_url=avatar_url,
            ))
            logger.info(f"User {user_id} joined lobby {lobby.id} ({len(lobby.players)}/{lobby.capacity})")

            if lobby.start_mode == StartMode.AUTO_COUNTDOWN and lobby.is_full:
                LobbyStateMachine.transition(lobby, LobbyStatus.COUNTDOWN)
                lobby.auto_start_at = self._clock() + self.countdown
                logger.info(f"Lobby {lobby.id} countdown started, auto start at {lobby.auto_start_at}")

            return self._snapshot(lobby)

    def leave_lobby(self, lobby_id: str, user_id: str) -> Lobby:
        """
        離開房間

        - 房主不能離開（請改用取消）
        - 倒數中有人離開：回到 OPEN 並清掉倒數
        - 房間空了：取消並移除
        """
        user_id = _require_identity(user_id)

        with self._lobby_lock(lobby_id) as lobby:
            self._advance(lobby)

            if user_id == lobby.creator_id:
                raise CreatorCannotLeave("The creator must cancel the lobby instead of leaving")
            player = lobby.find_player(user_id)
            if player is None:
                raise NotInLobby(lobby.id, user_id)
            if lobby.status.is_terminal:
                raise LobbyNotOpen(f"Lobby {lobby.id} is already {lobby.status.value}")

            lobby.players.remove(player)
            self.ledger.release(user_id, lobby.id)
            logger.info(f"User {user_id} left lobby {lobby.id}")

            if not lobby.players:
                self._cancel(lobby)
                return self._snapshot(lobby)

            if lobby.status == LobbyStatus.COUNTDOWN:
                LobbyStateMachine.transition(lobby, LobbyStatus.OPEN)
            lobby.auto_start_at = None
            lobby.outcome = None
            return self._snapshot(lobby)

    def set_ready(self, lobby_id: str, user_id: str) -> Lobby:
        """切換準備狀態；房主永遠視為已準備"""
        user_id = _require_identity(user_id)

        with self._lobby_lock(lobby_id) as lobby:
            self._advance(lobby)

            player = lobby.find_player(user_id)
            if player is None:
                raise NotInLobby(lobby.id, user_id)
            if lobby.status != LobbyStatus.OPEN:
                raise LobbyNotOpen(f"Lobby {lobby.id} is {lobby.status.value}")

            if player.id != lobby.creator_id:
                player.is_ready = not player.is_ready
                logger.info(f"User {user_id} ready={player.is_ready} in lobby {lobby.id}")
            return self._snapshot(lobby)

    def start_game(self, lobby_id: str, user_id: str) -> Lobby:
        """
        開始遊戲（房主專屬）

        前置條件：
        1. 呼叫者是房主
        2. 狀態是 OPEN 或 COUNTDOWN（房主可以提前結束倒數）
        3. 至少 2 位可參與者：多人房 = 房主 + 已準備玩家；兩人房必須坐滿

        擲骰與結算在鎖內同步完成，回傳的快照已帶有 outcome。
        """
        user_id = _require_identity(user_id)

        with self._lobby_lock(lobby_id) as lobby:
            self._advance(lobby)

            if lobby.creator_id != user_id:
                raise Forbidden("Only the creator can start the game")
            if lobby.status not in (LobbyStatus.OPEN, LobbyStatus.COUNTDOWN):
                raise LobbyNotOpen(f"Lobby {lobby.id} is {lobby.status.value}")

            participants = lobby.eligible_players()
            if lobby.start_mode == StartMode.AUTO_COUNTDOWN and not lobby.is_full:
                raise NotEnoughReady(f"Lobby {lobby.id} needs {lobby.capacity} seated players")
            if len(participants) < 2:
                raise NotEnoughReady(
                    f"Need at least 2 ready players to start, got {len(participants)}"
                )

            self._resolve(lobby, participants)
            return self._snapshot(lobby)

    def cancel_lobby(self, lobby_id: str, user_id: str) -> Lobby:
        """
        取消房間（房主專屬）

        異常：
            Forbidden: 呼叫者不是房主
            NotCancellable: 遊戲已經結束
        """
        user_id = _require_identity(user_id)

        with self._lobby_lock(lobby_id) as lobby:
            self._advance(lobby)

            if lobby.creator_id != user_id:
                raise Forbidden("Only the creator can cancel the lobby")
            if lobby.status == LobbyStatus.FINISHED:
                raise NotCancellable(f"Lobby {lobby.id} has already finished")

            self._cancel(lobby)
            return self._snapshot(lobby)

    # ============ 房間鎖 ============

    @contextmanager
    def _lobby_lock(self, lobby_id: str) -> Iterator[Lobby]:
        """
        取得房間鎖並回傳房間

        先確認房間存在才建立鎖，查詢不存在的 ID 不會留下任何鎖。
        等鎖期間房間被移除時，丟掉這把鎖並拋出 LobbyNotFound。
        """
        key = str(lobby_id)
        self.registry.get(key)
        with self._locks.hold(key):
            try:
                lobby = self.registry.get(key)
            except LobbyNotFound:
                self._locks.discard(key)
                raise
            yield lobby

    # ============ 內部（呼叫者必須持有房間鎖） ============

    def _advance(self, lobby: Lobby) -> None:
        """
        倒數到期就開局（lazy evaluation：只有在房間被讀取時才推進）

        狀態檢查在鎖內進行，所以同一個倒數只會觸發一次結算。
        自動開局失敗時房間停在 OPEN（玩家和押金保留），由房主決定重新開始或取消，
        之後的讀取不會一直重試同一個失敗的倒數。
        """
        if lobby.status != LobbyStatus.COUNTDOWN or lobby.auto_start_at is None:
            return
        if self._clock() < lobby.auto_start_at:
            return

        if len(lobby.players) != lobby.capacity:
            LobbyStateMachine.transition(lobby, LobbyStatus.OPEN)
            lobby.auto_start_at = None
            return

        logger.info(f"Countdown elapsed for lobby {lobby.id}, auto-starting")
        try:
            self._resolve(lobby, list(lobby.players))
        except DiceGameException:
            LobbyStateMachine.transition(lobby, LobbyStatus.OPEN)
            lobby.auto_start_at = None
            logger.warning(f"Auto start failed for lobby {lobby.id}, waiting for the creator")

    def _resolve(self, lobby: Lobby, participants: Sequence[Player]) -> None:
        """
        RESOLVING：擲骰 + 結算，視為單一 transaction

        任一步失敗：狀態回滾、Ledger 不會有任何紀錄、錯誤往上拋
        """
        previous = lobby.status
        LobbyStateMachine.transition(lobby, LobbyStatus.RESOLVING)

        try:
            outcome = resolve_round(participants, self.die, self.max_resolution_rounds)
            self.settlement.settle(lobby.id, lobby.wager, outcome)
        except Exception as e:
            logger.error(f"Resolution failed for lobby {lobby.id}: {e}", exc_info=True)
            LobbyStateMachine.transition(lobby, previous)
            if isinstance(e, DiceGameException):
                raise
            raise InternalInvariantViolation(f"Resolution failed for lobby {lobby.id}") from e

        lobby.outcome = outcome
        for player in lobby.players:
            player.last_roll = outcome.per_player_final_roll.get(player.id)
            if player.id not in outcome.participants:
                self.ledger.release(player.id, lobby.id)
        lobby.auto_start_at = None
        lobby.finished_at = self._clock()
        LobbyStateMachine.transition(lobby, LobbyStatus.FINISHED)

        logger.info(
            f"Game finished in lobby {lobby.id}: winner={outcome.winner_id} "
            f"roll={outcome.winning_roll} rounds={len(outcome.rounds)}"
        )

    def _cancel(self, lobby: Lobby) -> None:
        LobbyStateMachine.transition(lobby, LobbyStatus.CANCELLED)
        for player in lobby.players:
            self.ledger.release(player.id, lobby.id)
        lobby.auto_start_at = None
        self.registry.remove(lobby.id)
        self._locks.discard(lobby.id)
        logger.info(f"Lobby {lobby.id} cancelled")

    @staticmethod
    def _snapshot(lobby: Lobby) -> Lobby:
        return copy.deepcopy(lobby)
