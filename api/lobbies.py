"""
Lobby API Endpoints - 短輪詢版

職責：
1. 房間列表 / 查詢（客戶端靠輪詢 GET 取得最新狀態，倒數也在這時推進）
2. 建立 / 加入 / 離開 / 準備
3. 開始遊戲 / 取消房間（房主專屬）

錯誤回傳格式：
    HTTP status + detail = {"kind", "category", "message"}
"""
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from core.exceptions import DiceGameException, InternalInvariantViolation
from core.lobby_manager import LobbyManager
from core.lobby_registry import LobbyFilter
from dependencies import get_lobby_manager
from schemas import (
    CancelResponse,
    LobbyAction,
    LobbyCreate,
    LobbyJoin,
    LobbySnapshot,
)

router = APIRouter(prefix="/api/lobbies", tags=["lobbies"])
logger = logging.getLogger(__name__)

INTERNAL_ERROR = {
    "kind": "InternalError",
    "category": "internal",
    "message": "Internal error",
}


def to_http_exception(e: Exception, action: str) -> HTTPException:
    """業務異常 -> 對應的 HTTP 狀態；其他一律 500，不外洩內部細節"""
    if isinstance(e, DiceGameException) and not isinstance(e, InternalInvariantViolation):
        return HTTPException(status_code=e.status_code, detail=e.to_detail())
    logger.error(f"Failed to {action}: {e}", exc_info=True)
    return HTTPException(status_code=500, detail=INTERNAL_ERROR)


@router.get("", response_model=List[LobbySnapshot])
def list_lobbies(
    q: Optional[str] = Query(None, description="Match lobby id, creator or player name"),
    max_wager: Optional[Decimal] = Query(None),
    capacity: Optional[int] = Query(None),
    manager: LobbyManager = Depends(get_lobby_manager),
):
    try:
        lobbies = manager.list_lobbies(LobbyFilter(text=q, max_wager=max_wager, capacity=capacity))
        return [LobbySnapshot.from_lobby(lobby) for lobby in lobbies]
    except Exception as e:
        raise to_http_exception(e, "list lobbies")


@router.get("/{lobby_id}", response_model=LobbySnapshot)
def get_lobby(lobby_id: str, manager: LobbyManager = Depends(get_lobby_manager)):
    """
    取得單一房間（遊戲畫面輪詢用）

    倒數到期的房間會在這次讀取時開局並結算
    """
    try:
        return LobbySnapshot.from_lobby(manager.get_lobby(lobby_id))
    except Exception as e:
        raise to_http_exception(e, "get lobby")


@router.post("", response_model=LobbySnapshot, status_code=201)
def create_lobby(data: LobbyCreate, manager: LobbyManager = Depends(get_lobby_manager)):
    """
    建立房間

    前置條件：
    - wager > 0
    - capacity 為 2 或 4
    - 私人房間需要 4 位數字 PIN
    - 房主可用餘額 >= wager
    """
    try:
        lobby = manager.create_lobby(
            creator_id=data.user_id,
            display_name=data.display_name,
            wager=data.wager,
            capacity=data.capacity,
            visibility=data.visibility,
            pin=data.pin,
            avatar_url=data.avatar_url,
        )
        return LobbySnapshot.from_lobby(lobby)
    except Exception as e:
        raise to_http_exception(e, "create lobby")


@router.post("/{lobby_id}/join", response_model=LobbySnapshot)
def join_lobby(lobby_id: str, data: LobbyJoin, manager: LobbyManager = Depends(get_lobby_manager)):
    try:
        lobby = manager.join_lobby(
            lobby_id, data.user_id, data.display_name, data.pin, data.avatar_url,
        )
        return LobbySnapshot.from_lobby(lobby)
    except Exception as e:
        raise to_http_exception(e, "join lobby")


@router.post("/{lobby_id}/leave", response_model=LobbySnapshot)
def leave_lobby(lobby_id: str, data: LobbyAction, manager: LobbyManager = Depends(get_lobby_manager)):
    try:
        return LobbySnapshot.from_lobby(manager.leave_lobby(lobby_id, data.user_id))
    except Exception as e:
        raise to_http_exception(e, "leave lobby")


@router.post("/{lobby_id}/ready", response_model=LobbySnapshot)
def set_ready(lobby_id: str, data: LobbyAction, manager: LobbyManager = Depends(get_lobby_manager)):
    try:
        return LobbySnapshot.from_lobby(manager.set_ready(lobby_id, data.user_id))
    except Exception as e:
        raise to_http_exception(e, "set ready")


@router.post("/{lobby_id}/start", response_model=LobbySnapshot)
def start_game(lobby_id: str, data: LobbyAction, manager: LobbyManager = Depends(get_lobby_manager)):
    """
    開始遊戲（房主 endpoint）

    擲骰與結算同步完成，回傳的快照包含 outcome
    """
    try:
        return LobbySnapshot.from_lobby(manager.start_game(lobby_id, data.user_id))
    except Exception as e:
        raise to_http_exception(e, "start game")


@router.post("/{lobby_id}/cancel", response_model=CancelResponse)
def cancel_lobby(lobby_id: str, data: LobbyAction, manager: LobbyManager = Depends(get_lobby_manager)):
    try:
        lobby = manager.cancel_lobby(lobby_id, data.user_id)
        return CancelResponse(ok=True, lobby_id=lobby.id)
    except Exception as e:
        raise to_http_exception(e, "cancel lobby")
