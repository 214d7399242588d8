from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from core.exceptions import InvalidStateTransition, LobbyNotFound
from core.lobby_registry import LobbyFilter, LobbyRegistry
from core.state_machine import LobbyStateMachine
from models import Lobby, LobbyStatus, Player, Visibility

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _lobby(lobby_id="1", status=LobbyStatus.OPEN, wager="1", capacity=2, creator="alice"):
    return Lobby(
        id=lobby_id,
        creator_id=creator,
        wager=Decimal(wager),
        capacity=capacity,
        visibility=Visibility.PUBLIC,
        created_at=NOW,
        status=status,
        players=[Player(id=creator, display_name=creator.title(), is_ready=True)],
    )


@pytest.mark.parametrize(
    "current, target",
    [
        (LobbyStatus.OPEN, LobbyStatus.COUNTDOWN),
        (LobbyStatus.OPEN, LobbyStatus.RESOLVING),
        (LobbyStatus.COUNTDOWN, LobbyStatus.OPEN),
        (LobbyStatus.COUNTDOWN, LobbyStatus.RESOLVING),
        (LobbyStatus.RESOLVING, LobbyStatus.FINISHED),
        (LobbyStatus.COUNTDOWN, LobbyStatus.CANCELLED),
    ],
)
def test_allowed_transitions(current, target):
    lobby = LobbyStateMachine.transition(_lobby(status=current), target)
    assert lobby.status == target


@pytest.mark.parametrize(
    "current, target",
    [
        (LobbyStatus.FINISHED, LobbyStatus.OPEN),
        (LobbyStatus.CANCELLED, LobbyStatus.OPEN),
        (LobbyStatus.OPEN, LobbyStatus.FINISHED),
        (LobbyStatus.RESOLVING, LobbyStatus.CANCELLED),
    ],
)
def test_rejected_transitions(current, target):
    lobby = _lobby(status=current)
    with pytest.raises(InvalidStateTransition):
        LobbyStateMachine.transition(lobby, target)
    assert lobby.status == current


def test_registry_get_and_idempotent_remove():
    registry = LobbyRegistry()
    lobby = registry.add(_lobby(registry.next_id()))

    assert registry.get(lobby.id) is lobby
    registry.remove(lobby.id)
    registry.remove(lobby.id)
    with pytest.raises(LobbyNotFound):
        registry.get(lobby.id)
    assert len(registry) == 0


def test_filter_matches_player_names():
    first = _lobby("1")
    first.players.append(Player(id="bob", display_name="Bobby"))
    second = _lobby("2", creator="cara", capacity=4, wager="3")

    def _ids(lobby_filter):
        return [l.id for l in (first, second) if lobby_filter.matches(l)]

    assert _ids(LobbyFilter(text="BOBBY")) == ["1"]
    assert _ids(LobbyFilter(text="cara", capacity=4)) == ["2"]
    assert _ids(LobbyFilter(max_wager=Decimal("0.5"))) == []


def test_prune_only_drops_old_finished_lobbies():
    registry = LobbyRegistry()
    old = registry.add(_lobby("1", status=LobbyStatus.FINISHED))
    old.finished_at = NOW - timedelta(hours=1)
    fresh = registry.add(_lobby("2", status=LobbyStatus.FINISHED))
    fresh.finished_at = NOW
    registry.add(_lobby("3"))

    assert registry.prune_finished(NOW - timedelta(minutes=10)) == ["1"]
    assert registry.ids() == ["2", "3"]
