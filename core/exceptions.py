"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理

每個異常帶有：
- kind: 機器可讀的錯誤種類（例如 WrongPin）
- category: 錯誤大類（validation / not_found / forbidden / conflict / ...）
- status_code: API 層對應的 HTTP 狀態碼
"""


class DiceGameException(Exception):
    """所有遊戲異常的基類"""
    category = "internal"
    status_code = 500

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return self.__class__.__name__

    def to_detail(self) -> dict:
        return {
            "kind": self.kind,
            "category": self.category,
            "message": self.message,
        }


# ============ 錯誤大類 ============

class ValidationFailed(DiceGameException):
    """輸入不合法，任何狀態變更之前就拒絕"""
    category = "validation"
    status_code = 400


class NotFoundError(DiceGameException):
    category = "not_found"
    status_code = 404


class ForbiddenError(DiceGameException):
    """非房主嘗試執行房主專屬操作"""
    category = "forbidden"
    status_code = 403


class ConflictError(DiceGameException):
    """操作與房間目前狀態衝突"""
    category = "conflict"
    status_code = 409


class InsufficientFunds(DiceGameException):
    """可用餘額不足（提款或加入房間）"""
    category = "insufficient_funds"
    status_code = 409

    def __init__(self, user_id, required, available):
        self.user_id = user_id
        self.required = required
        self.available = available
        super().__init__(
            f"User {user_id} needs {required} but only {available} is available"
        )


class InternalInvariantViolation(DiceGameException):
    """內部不變量被破壞（例如擲骰不終止、點數超出範圍）"""
    category = "internal"
    status_code = 500


# ============ Validation ============

class InvalidWager(ValidationFailed):
    pass


class InvalidCapacity(ValidationFailed):
    pass


class InvalidPin(ValidationFailed):
    """私人房間必須帶 4 位數字 PIN"""
    pass


class InvalidAmount(ValidationFailed):
    pass


class MissingIdentity(ValidationFailed):
    pass


# ============ Lobby 相關異常 ============

class LobbyNotFound(NotFoundError):
    """房間不存在"""
    def __init__(self, lobby_id):
        self.lobby_id = lobby_id
        super().__init__(f"Lobby {lobby_id} not found")


class LobbyFull(ConflictError):
    pass


class LobbyNotOpen(ConflictError):
    """房間不接受此操作（已開始倒數、已結束或已取消）"""
    pass


class WrongPin(ConflictError):
    pass


class NotEnoughReady(ConflictError):
    """準備好的玩家少於 2 人"""
    pass


class CreatorCannotLeave(ConflictError):
    """房主不能離開，只能取消房間"""
    pass


class NotInLobby(ConflictError):
    def __init__(self, lobby_id, user_id):
        self.lobby_id = lobby_id
        self.user_id = user_id
        super().__init__(f"User {user_id} is not seated in lobby {lobby_id}")


class NotCancellable(ConflictError):
    pass


class Forbidden(ForbiddenError):
    pass


# ============ Ledger 相關異常 ============

class DuplicateTransaction(ConflictError):
    """同一筆外部交易已經入帳"""
    pass


# ============ 狀態轉換異常 ============

class InvalidStateTransition(InternalInvariantViolation):
    """非法的狀態轉換"""
    pass


class ResolutionDidNotTerminate(InternalInvariantViolation):
    pass


class RollOutOfRange(InternalInvariantViolation):
    def __init__(self, roll):
        self.roll = roll
        super().__init__(f"Die roll {roll!r} is outside 1..6")
