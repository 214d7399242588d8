import random

import pytest

from core.exceptions import ResolutionDidNotTerminate, RollOutOfRange, ValidationFailed
from models import Player
from services.dice_service import ScriptedDie, SystemDie, checked_roll
from services.resolution_service import resolve_round
from tests.helpers import ConstantDie


def _players(*ids):
    return [Player(id=pid, display_name=pid.title()) for pid in ids]


def test_system_die_stays_in_range_and_covers_all_faces():
    die = SystemDie(random.Random(1234))
    seen = set()
    for _ in range(10_000):
        face = checked_roll(die)
        assert 1 <= face <= 6
        seen.add(face)
    assert seen == {1, 2, 3, 4, 5, 6}


@pytest.mark.parametrize("bad", [0, 7, -1, 3.5, "6", True, None])
def test_checked_roll_rejects_out_of_range(bad):
    with pytest.raises(RollOutOfRange):
        checked_roll(ConstantDie(bad))


def test_tie_rerolls_only_tied_players_and_keeps_final_round_rolls():
    # round 1: 4 vs 4 -> tie, round 2: 4 vs 6
    outcome = resolve_round(_players("alice", "bob"), ScriptedDie([4, 4, 4, 6]))

    assert len(outcome.rounds) == 2
    assert [r.roll for r in outcome.rounds[0].rolls] == [4, 4]
    assert outcome.winner_id == "bob"
    assert outcome.winning_roll == 6
    assert outcome.per_player_final_roll == {"alice": 4, "bob": 6}


def test_eliminated_player_keeps_roll_from_last_round_contended():
    # round 1: alice 6, bob 6, cara 2 -> cara out; round 2: alice 3, bob 5
    outcome = resolve_round(_players("alice", "bob", "cara"), ScriptedDie([6, 6, 2, 3, 5]))

    assert outcome.winner_id == "bob"
    assert outcome.per_player_final_roll == {"alice": 3, "bob": 5, "cara": 2}
    assert [r.player_id for r in outcome.rounds[1].rolls] == ["alice", "bob"]
    assert outcome.participants == ("alice", "bob", "cara")


def test_resolution_always_produces_a_unique_winner():
    die = SystemDie(random.Random(42))
    for n in (2, 3, 4) * 100:
        ids = [f"p{i}" for i in range(n)]
        outcome = resolve_round(_players(*ids), die)

        last = outcome.rounds[-1]
        winner_roll = outcome.per_player_final_roll[outcome.winner_id]
        others = [r.roll for r in last.rolls if r.player_id != outcome.winner_id]
        assert all(winner_roll > roll for roll in others)
        assert set(outcome.per_player_final_roll) == set(ids)
        assert all(1 <= v <= 6 for v in outcome.per_player_final_roll.values())


def test_endless_ties_hit_the_round_guard():
    with pytest.raises(ResolutionDidNotTerminate):
        resolve_round(_players("alice", "bob"), ConstantDie(3), max_rounds=50)


def test_broken_die_is_reported_not_repaired():
    with pytest.raises(RollOutOfRange):
        resolve_round(_players("alice", "bob"), ScriptedDie([0, 5]))


def test_needs_two_unique_participants():
    with pytest.raises(ValidationFailed):
        resolve_round(_players("alice"), ScriptedDie([1]))
    with pytest.raises(ValidationFailed):
        resolve_round(_players("alice", "alice"), ScriptedDie([1, 2]))
