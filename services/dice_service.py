"""
骰子服務：Randomness Source

純計算邏輯，只負責產生 1..6 的點數，不知道房間或玩家的存在
"""
import random
from typing import Iterable, Iterator, Optional, Protocol

from core.exceptions import RollOutOfRange

MIN_FACE = 1
MAX_FACE = 6


class DieRoller(Protocol):
    def roll(self) -> int:
        ...


class SystemDie:
    """
    正常使用的六面骰

    使用 random.SystemRandom（OS 的熵來源），每次擲骰互相獨立、均勻分佈。
    randint 的兩端都包含，所以永遠不會產生 0 或 7。
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.SystemRandom()

    def roll(self) -> int:
        return self._rng.randint(MIN_FACE, MAX_FACE)


class ScriptedDie:
    """
    依序回傳預先給定的點數（測試或重播用）

    範例：
        die = ScriptedDie([4, 4, 6, 4])
        die.roll()  # 4
    """

    def __init__(self, faces: Iterable[int]):
        self._faces: Iterator[int] = iter(faces)

    def roll(self) -> int:
        try:
            return next(self._faces)
        except StopIteration:
            raise RuntimeError("ScriptedDie ran out of faces")


def checked_roll(die: DieRoller) -> int:
    """
    擲一次骰並確認點數在 1..6

    異常：
        RollOutOfRange: 骰子來源壞掉（回傳非整數或超出範圍）
    """
    face = die.roll()
    if isinstance(face, bool) or not isinstance(face, int):
        raise RollOutOfRange(face)
    if face < MIN_FACE or face > MAX_FACE:
        raise RollOutOfRange(face)
    return face
