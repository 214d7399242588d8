"""
Lobby Registry：lobby_id -> Lobby

職責：
1. 分配遞增的房間 ID
2. 保存 / 查詢 / 移除房間
3. 依條件篩選房間列表

只管「有哪些房間」，不管房間內的狀態轉換（交給 LobbyManager）
"""
import itertools
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from core.exceptions import LobbyNotFound
from models import Lobby, LobbyStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LobbyFilter:
    text: Optional[str] = None
    max_wager: Optional[Decimal] = None
    capacity: Optional[int] = None

    def matches(self, lobby: Lobby) -> bool:
        if self.capacity is not None and lobby.capacity != self.capacity:
            return False
        if self.max_wager is not None and lobby.wager > self.max_wager:
            return False
        if self.text:
            needle = self.text.strip().lower()
            creator = lobby.creator
            haystack = [lobby.id, lobby.creator_id]
            if creator is not None:
                haystack.append(creator.display_name)
            haystack.extend(p.display_name for p in lobby.players)
            if not any(needle in value.lower() for value in haystack):
                return False
        return True


class LobbyRegistry:
    """In-memory 房間表；dict 保持插入順序，ids() 依建立順序回傳"""

    def __init__(self):
        self._lobbies: Dict[str, Lobby] = {}
        self._guard = threading.Lock()
        self._ids = itertools.count(1)

    def next_id(self) -> str:
        with self._guard:
            return str(next(self._ids))

    def add(self, lobby: Lobby) -> Lobby:
        with self._guard:
            if lobby.id in self._lobbies:
                raise ValueError(f"Lobby {lobby.id} already registered")
            self._lobbies[lobby.id] = lobby
        logger.debug(f"Registered lobby {lobby.id}")
        return lobby

    def get(self, lobby_id: str) -> Lobby:
        """
        異常：
            LobbyNotFound: 房間不存在（或已被取消移除）
        """
        with self._guard:
            lobby = self._lobbies.get(str(lobby_id))
        if lobby is None:
            raise LobbyNotFound(lobby_id)
        return lobby

    def ids(self) -> List[str]:
        with self._guard:
            return list(self._lobbies.keys())

    def remove(self, lobby_id: str) -> None:
        """冪等：移除不存在的房間不會報錯"""
        with self._guard:
            removed = self._lobbies.pop(str(lobby_id), None)
        if removed is not None:
            logger.info(f"Removed lobby {lobby_id}")

    def prune_finished(self, older_than: datetime) -> List[str]:
        """移除在 older_than 之前就已結束的房間，回傳被移除的 ID"""
        with self._guard:
            stale = [
                lobby_id
                for lobby_id, lobby in self._lobbies.items()
                if lobby.status == LobbyStatus.FINISHED
                and lobby.finished_at is not None
                and lobby.finished_at < older_than
            ]
            for lobby_id in stale:
                del self._lobbies[lobby_id]
        if stale:
            logger.info(f"Pruned {len(stale)} finished lobbies: {stale}")
        return stale

    def __len__(self) -> int:
        with self._guard:
            return len(self._lobbies)
