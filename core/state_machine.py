"""
狀態機：集中管理 Lobby 的所有狀態轉換

合法的轉換：
    OPEN       -> COUNTDOWN   兩人房坐滿
    OPEN       -> RESOLVING   房主手動開局
    OPEN       -> CANCELLED   房主取消 / 最後一人離開
    COUNTDOWN  -> RESOLVING   倒數結束（或房主提前開局）
    COUNTDOWN  -> OPEN        有人離開，重置倒數
    COUNTDOWN  -> CANCELLED
    RESOLVING  -> FINISHED    擲骰與結算都完成
    RESOLVING  -> OPEN / COUNTDOWN   結算失敗時回滾
    FINISHED / CANCELLED      終止狀態
"""
import logging
from typing import Dict, FrozenSet

from core.exceptions import InvalidStateTransition
from models import Lobby, LobbyStatus

logger = logging.getLogger(__name__)


class LobbyStateMachine:
    TRANSITIONS: Dict[LobbyStatus, FrozenSet[LobbyStatus]] = {
        LobbyStatus.OPEN: frozenset({
            LobbyStatus.COUNTDOWN,
            LobbyStatus.RESOLVING,
            LobbyStatus.CANCELLED,
        }),
        LobbyStatus.COUNTDOWN: frozenset({
            LobbyStatus.OPEN,
            LobbyStatus.RESOLVING,
            LobbyStatus.CANCELLED,
        }),
        LobbyStatus.RESOLVING: frozenset({
            LobbyStatus.FINISHED,
            LobbyStatus.OPEN,
            LobbyStatus.COUNTDOWN,
        }),
        LobbyStatus.FINISHED: frozenset(),
        LobbyStatus.CANCELLED: frozenset(),
    }

    @classmethod
    def can_transition(cls, current: LobbyStatus, target: LobbyStatus) -> bool:
        return target in cls.TRANSITIONS[current]

    @classmethod
    def transition(cls, lobby: Lobby, target: LobbyStatus) -> Lobby:
        """
        轉換 Lobby 狀態

        注意：
            - 呼叫者必須持有該 Lobby 的鎖
            - 只改 status，其他欄位（倒數、結果）由 LobbyManager 負責

        異常：
            InvalidStateTransition: 轉換不在表內
        """
        current = lobby.status
        if not cls.can_transition(current, target):
            raise InvalidStateTransition(
                f"Lobby {lobby.id}: cannot transition {current.value} -> {target.value}"
            )
        lobby.status = target
        logger.info(f"Lobby {lobby.id} state changed: {current.value} -> {target.value}")
        return lobby
