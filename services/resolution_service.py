"""
擲骰結算服務：Round Resolution Protocol

規則（逐輪淘汰）：
1. 每位競爭者各擲一顆骰
2. 只有點數最高的人留下；若只剩一人，他就是贏家
3. 平手的人繼續下一輪，其餘人淘汰

每位參與者的 final roll = 他最後一次還是競爭者的那一輪的點數，
被淘汰的人保留淘汰那一輪的點數，不會是 0。
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Sequence

from core.exceptions import ResolutionDidNotTerminate, ValidationFailed
from models import GameOutcome, Player, RollRecord, RoundSnapshot
from services.dice_service import DieRoller, checked_roll

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 1000


def resolve_round(
    participants: Sequence[Player],
    die: DieRoller,
    max_rounds: int = DEFAULT_MAX_ROUNDS,
) -> GameOutcome:
    """
    執行擲骰直到產生唯一贏家

    參數：
        participants: 至少 2 位參與者（依座位順序）
        die: Randomness Source
        max_rounds: 安全上限；正常的骰子連續平手這麼多輪的機率可以忽略

    返回：
        GameOutcome（不可變）

    異常：
        ValidationFailed: 參與者少於 2 人或有重複
        RollOutOfRange: 骰子回傳超出 1..6 的點數
        ResolutionDidNotTerminate: 超過 max_rounds 仍未分出勝負
    """
    ids = [p.id for p in participants]
    if len(ids) < 2:
        raise ValidationFailed(f"Need at least 2 participants, got {len(ids)}")
    if len(set(ids)) != len(ids):
        raise ValidationFailed("Participants must be unique")

    contenders: List[Player] = list(participants)
    rounds: List[RoundSnapshot] = []
    final_rolls: Dict[str, int] = {}

    for round_number in range(1, max_rounds + 1):
        rolls = tuple(
            RollRecord(player_id=p.id, display_name=p.display_name, roll=checked_roll(die))
            for p in contenders
        )
        snapshot = RoundSnapshot(round_number=round_number, rolls=rolls)
        rounds.append(snapshot)

        for record in rolls:
            final_rolls[record.player_id] = record.roll

        highest = snapshot.highest
        top_ids = {r.player_id for r in rolls if r.roll == highest}

        if len(top_ids) == 1:
            winner_id = next(iter(top_ids))
            logger.info(
                f"Resolved after {round_number} round(s): winner={winner_id} roll={highest}"
            )
            return GameOutcome(
                id=uuid.uuid4().hex,
                winner_id=winner_id,
                winning_roll=highest,
                per_player_final_roll={pid: final_rolls[pid] for pid in ids},
                rounds=tuple(rounds),
                participants=tuple(ids),
                created_at=datetime.now(timezone.utc),
            )

        logger.debug(f"Round {round_number} tied at {highest} between {sorted(top_ids)}")
        contenders = [p for p in contenders if p.id in top_ids]

    raise ResolutionDidNotTerminate(
        f"No unique winner after {max_rounds} rounds among {ids}"
    )
