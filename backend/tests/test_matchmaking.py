from tictactoe.constants import GameStatus
from tictactoe.matchmaking import Matchmaker


def test_first_player_waits_second_player_matches(registry, make_player) -> None:
    mm = Matchmaker(registry)
    first = mm.find_match(make_player(1))
    assert first.matched is False
    assert first.room.game.status is GameStatus.WAITING
    assert mm.is_waiting("conn-1")

    second = mm.find_match(make_player(2))
    assert second.matched is True
    assert second.room.room_id == first.room.room_id
    assert second.room.game.status is GameStatus.ACTIVE
    assert {p.connection_id for p in second.room.game.players} == {"conn-1", "conn-2"}
    assert mm.waiting_count() == 0


def test_queue_is_fifo(registry, make_player) -> None:
    mm = Matchmaker(registry)
    r1 = mm.find_match(make_player(1)).room
    mm.find_match(make_player(2))  # matched with 1
    r3 = mm.find_match(make_player(3)).room
    mm.find_match(make_player(4))  # matched with 3
    assert r1.room_id != r3.room_id
    first_pair = {p.connection_id for p in registry.get_room(r1.room_id).game.players}
    second_pair = {p.connection_id for p in registry.get_room(r3.room_id).game.players}
    assert first_pair == {"conn-1", "conn-2"}
    assert second_pair == {"conn-3", "conn-4"}


def test_reentrant_call_keeps_single_queue_slot(registry, make_player) -> None:
    mm = Matchmaker(registry)
    p1 = make_player(1)
    mm.find_match(p1)
    again = mm.find_match(p1)
    assert again.matched is False
    assert list(registry.matchmaking_queue) == ["conn-1"]
    # Старая комната ожидания не осталась висеть
    assert registry.room_count() == 1


def test_stale_waiter_is_skipped_and_new_player_enqueued(registry, make_player) -> None:
    mm = Matchmaker(registry)
    waiting_room = mm.find_match(make_player(1)).room
    # Комнату ожидания заняли напрямую, в обход очереди
    registry.join_room(waiting_room.room_id, make_player(2))

    result = mm.find_match(make_player(3))
    assert result.matched is False
    assert result.room.room_id != waiting_room.room_id
    assert list(registry.matchmaking_queue) == ["conn-3"]


def test_skips_stale_entries_until_eligible_waiter(registry, make_player) -> None:
    mm = Matchmaker(registry)
    mm.find_match(make_player(1))
    registry.matchmaking_queue.appendleft("gone")
    result = mm.find_match(make_player(3))
    assert result.matched is True
    assert {p.connection_id for p in result.room.game.players} == {"conn-1", "conn-3"}


def test_leaving_clears_queue_membership(registry, make_player) -> None:
    mm = Matchmaker(registry)
    mm.find_match(make_player(1))
    registry.leave_room("conn-1")
    assert not mm.is_waiting("conn-1")
    assert registry.room_count() == 0
    assert mm.find_match(make_player(2)).matched is False


def test_cancel(registry, make_player) -> None:
    mm = Matchmaker(registry)
    mm.find_match(make_player(1))
    assert mm.cancel("conn-1") is True
    assert mm.cancel("conn-1") is False
    assert mm.waiting_count() == 0
