"""
並發控制工具

提供 process 內的鎖定機制，防止競態條件（Race Condition）

所有狀態都在記憶體內，所以改用 threading.RLock 實現悲觀鎖：
- 每個 Lobby 一把鎖：同一個房間的 read-modify-write 互斥，不同房間互不影響
- 每個 User 一把鎖：結算和提款對同一個錢包序列化
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterable, Iterator


class KeyedLocks:
    """
    依 key 延遲建立的可重入鎖集合

    鎖只會為存在的資源建立，資源移除時由呼叫者 discard，集合不會無限成長
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}

    def get(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """
        鎖定單一 key

        範例：
            with lobby_locks.hold(lobby_id):
                lobby = registry.get(lobby_id)
                lobby.status = LobbyStatus.FINISHED

        注意：
            - RLock 可重入，同一個 thread 內巢狀呼叫不會 deadlock
        """
        lock = self.get(key)
        with lock:
            yield

    @contextmanager
    def hold_many(self, keys: Iterable[Hashable]) -> Iterator[None]:
        """
        同時鎖定多個 key（用於結算時鎖住所有參與者）

        注意：
            - 一律依排序後的順序取鎖，避免兩個結算互相等待造成 deadlock
        """
        ordered = sorted(set(keys), key=str)
        acquired = []
        try:
            for key in ordered:
                lock = self.get(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def discard(self, key: Hashable) -> None:
        """
        房間移除後丟掉它的鎖

        正在等待舊鎖的請求拿到鎖後會查不到房間，直接得到 LobbyNotFound
        """
        with self._guard:
            self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
