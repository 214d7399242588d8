"""
Settlement service.

Pushes a finished game's outcome into the ledger exactly once. The
idempotency key is (lobby_id, outcome.id): an outcome is created once and
never mutated, so re-observing a finished lobby can never charge twice.
"""
import logging
from decimal import Decimal
from typing import Tuple

from core.exceptions import InternalInvariantViolation
from core.ledger import Ledger
from models import GameOutcome, LedgerEntry
from services.payout_service import Payout, PayoutPolicy

logger = logging.getLogger(__name__)


class SettlementService:
    def __init__(self, ledger: Ledger, policy: PayoutPolicy):
        self.ledger = ledger
        self.policy = policy

    def quote(self, wager: Decimal, outcome: GameOutcome) -> Payout:
        """Compute the payout without touching the ledger."""
        if outcome.winner_id not in outcome.participants:
            raise InternalInvariantViolation(
                f"Winner {outcome.winner_id} is not a participant"
            )
        payout = self.policy.calculate(wager, outcome.participants, outcome.winner_id)
        if payout.total_delta != -payout.rake:
            raise InternalInvariantViolation(
                f"Payout does not balance: total={payout.total_delta} rake={payout.rake}"
            )
        return payout

    def settle(self, lobby_id: str, wager: Decimal, outcome: GameOutcome) -> Tuple[LedgerEntry, ...]:
        payout = self.quote(wager, outcome)
        logger.info(
            f"Settling lobby {lobby_id} with policy={self.policy.name} "
            f"pot={payout.pot} rake={payout.rake} winner={outcome.winner_id}"
        )
        return self.ledger.apply_settlement((lobby_id, outcome.id), payout.deltas)
