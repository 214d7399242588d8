"""
派彩服務：計算每位參與者的餘額變化

純計算邏輯，不碰 Ledger。
兩種派彩政策都出現過，用名稱選擇，不影響狀態機：

┌──────────────────────┬──────────────────────────────┬────────────┐
│ 政策                 │ 贏家                         │ 輸家       │
├──────────────────────┼──────────────────────────────┼────────────┤
│ rake                 │ +(pot - rake - wager)        │ -wager     │
│ winner_takes_stakes  │ +wager * (n - 1)             │ -wager     │
└──────────────────────┴──────────────────────────────┴────────────┘

pot = wager * n，rake = pot * house_fee_rate（無條件捨去到 nanoton，零頭留給贏家）
"""
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Dict, Sequence

from models import AMOUNT_QUANTUM

RAKE = "rake"
WINNER_TAKES_STAKES = "winner_takes_stakes"


@dataclass(frozen=True)
class Payout:
    pot: Decimal
    rake: Decimal
    deltas: Dict[str, Decimal]

    @property
    def total_delta(self) -> Decimal:
        return sum(self.deltas.values(), Decimal("0"))


class PayoutPolicy:
    name = ""

    def calculate(self, wager: Decimal, participants: Sequence[str], winner_id: str) -> Payout:
        raise NotImplementedError


class RakePolicy(PayoutPolicy):
    """
    從彩池抽水後，贏家拿走剩下的部分

    範例（wager=2.0，4 人，5%）：
        pot = 8.0, rake = 0.4
        贏家 +5.6，三位輸家各 -2.0，總和 -0.4 = -rake
    """
    name = RAKE

    def __init__(self, house_fee_rate: Decimal):
        self.house_fee_rate = Decimal(house_fee_rate)

    def calculate(self, wager: Decimal, participants: Sequence[str], winner_id: str) -> Payout:
        pot = wager * len(participants)
        rake = (pot * self.house_fee_rate).quantize(AMOUNT_QUANTUM, rounding=ROUND_DOWN)
        deltas = {
            pid: (pot - rake - wager) if pid == winner_id else -wager
            for pid in participants
        }
        return Payout(pot=pot, rake=rake, deltas=deltas)


class WinnerTakesStakesPolicy(PayoutPolicy):
    """不抽水，贏家拿走其他人的賭注"""
    name = WINNER_TAKES_STAKES

    def calculate(self, wager: Decimal, participants: Sequence[str], winner_id: str) -> Payout:
        pot = wager * len(participants)
        deltas = {
            pid: wager * (len(participants) - 1) if pid == winner_id else -wager
            for pid in participants
        }
        return Payout(pot=pot, rake=Decimal("0"), deltas=deltas)


def get_payout_policy(name: str, house_fee_rate: Decimal) -> PayoutPolicy:
    if name == RAKE:
        return RakePolicy(house_fee_rate)
    if name == WINNER_TAKES_STAKES:
        return WinnerTakesStakesPolicy()
    raise ValueError(f"Unknown payout policy: {name}")
