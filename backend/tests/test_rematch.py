import pytest

from tictactoe.constants import GameStatus, Mark, RematchState
from tictactoe.errors import ErrorCode
from tictactoe.rematch import RematchCoordinator


async def _finish_game(registry, x, o) -> None:
    for player, row, col in [(x, 0, 0), (o, 1, 0), (x, 0, 1), (o, 1, 1), (x, 0, 2)]:
        result = await registry.make_move(player.connection_id, row, col)
        assert result.ok


@pytest.fixture
def coordinator(registry):
    return RematchCoordinator(registry)


def test_rematch_requires_finished_game(coordinator, active_room) -> None:
    _, p1, _ = active_room
    result = coordinator.request_rematch(p1.connection_id)
    assert result.error is ErrorCode.GAME_NOT_FINISHED
    assert coordinator.request_rematch("ghost").error is ErrorCode.PLAYER_NOT_IN_ROOM


@pytest.mark.anyio
async def test_one_ready_then_both_ready_swaps_marks(registry, coordinator, active_room) -> None:
    room_id, p1, p2 = active_room
    await _finish_game(registry, p1, p2)
    old_game_id = registry.get_room(room_id).game.game_id

    first = coordinator.request_rematch(p1.connection_id)
    assert first.ok
    assert first.value.started is False
    assert first.value.opponent_id == p2.connection_id
    assert coordinator.state(p1.connection_id) is RematchState.ONE_READY

    second = coordinator.request_rematch(p2.connection_id)
    assert second.value.started is True
    game = second.value.room.game
    assert game.game_id != old_game_id
    assert game.status is GameStatus.ACTIVE
    assert game.outcome is None
    assert game.turn is Mark.X
    assert all(cell is None for row in game.board for cell in row)
    assert game.player(p1.connection_id).mark is Mark.O
    assert game.player(p2.connection_id).mark is Mark.X
    assert not any(p.ready_for_rematch for p in game.players)
    assert coordinator.state(p1.connection_id) is RematchState.NONE
    assert second.value.room.room_id == room_id


@pytest.mark.anyio
async def test_rematch_keeps_spectators(registry, coordinator, active_room, make_player) -> None:
    room_id, p1, p2 = active_room
    registry.join_room(room_id, make_player(3))
    await _finish_game(registry, p1, p2)
    coordinator.request_rematch(p1.connection_id)
    room = coordinator.request_rematch(p2.connection_id).value.room
    assert room.spectators == frozenset({"conn-3"})


@pytest.mark.anyio
async def test_marks_swap_on_every_consecutive_game(registry, coordinator, active_room) -> None:
    _, p1, p2 = active_room
    for _ in range(3):
        before = registry.get_room_by_connection(p1.connection_id).game
        x = p1 if before.player(p1.connection_id).mark is Mark.X else p2
        o = p2 if x is p1 else p1
        await _finish_game(registry, x, o)
        coordinator.request_rematch(p1.connection_id)
        after = coordinator.request_rematch(p2.connection_id).value.room.game
        assert after.player(p1.connection_id).mark is not before.player(p1.connection_id).mark
        assert after.turn is Mark.X


@pytest.mark.anyio
async def test_decline_clears_ready_flags(registry, coordinator, active_room) -> None:
    _, p1, p2 = active_room
    await _finish_game(registry, p1, p2)
    coordinator.request_rematch(p1.connection_id)
    declined = coordinator.decline_rematch(p2.connection_id)
    assert declined.ok
    assert declined.value.opponent_id == p1.connection_id
    assert coordinator.state(p1.connection_id) is RematchState.NONE

    # Старый запрос не запускает новую партию сам по себе
    again = coordinator.request_rematch(p2.connection_id)
    assert again.value.started is False


@pytest.mark.anyio
async def test_rematch_after_opponent_left(registry, coordinator, active_room) -> None:
    _, p1, p2 = active_room
    await _finish_game(registry, p1, p2)
    registry.leave_room(p2.connection_id)
    result = coordinator.request_rematch(p1.connection_id)
    assert result.error is ErrorCode.OPPONENT_MISSING


@pytest.mark.anyio
async def test_spectator_cannot_request_rematch(registry, coordinator, active_room, make_player) -> None:
    room_id, p1, p2 = active_room
    registry.join_room(room_id, make_player(3))
    await _finish_game(registry, p1, p2)
    assert coordinator.request_rematch("conn-3").error is ErrorCode.PLAYER_NOT_FOUND
