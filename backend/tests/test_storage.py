import json

import pytest

from tictactoe.constants import GameStatus, Mark, Outcome
from tictactoe.models import Game, Player
from tictactoe.storage import (
    MemoryStatsStore,
    SqlStatsStore,
    async_database_url,
    create_sink,
)


def _finished_game() -> Game:
    players = [
        Player(connection_id="a", external_identity=1, display_name="alice", mark=Mark.X),
        Player(connection_id="b", external_identity=2, display_name="bob", mark=Mark.O),
    ]
    game = Game(players=players, status=GameStatus.FINISHED, outcome=Outcome.X)
    game.board[0] = [Mark.X, Mark.X, Mark.X]
    return game


def test_async_database_url() -> None:
    assert async_database_url("sqlite:///game.db") == "sqlite+aiosqlite:///game.db"
    assert async_database_url("postgresql://u@h/db") == "postgresql+asyncpg://u@h/db"
    assert async_database_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"


@pytest.mark.anyio
async def test_memory_store_counts_outcomes() -> None:
    store = MemoryStatsStore()
    created = await store.get_or_create_player(1, "alice")
    assert created == {"telegram_id": 1, "wins": 0, "losses": 0, "draws": 0, "total_games": 0}
    await store.record_outcome(1, "win")
    await store.record_outcome(1, "draw")
    stats = await store.get_stats(1)
    assert stats["wins"] == 1
    assert stats["draws"] == 1
    assert stats["total_games"] == 2
    assert await store.get_stats(999) is None


@pytest.mark.anyio
async def test_memory_store_rejects_unknown_outcome() -> None:
    store = MemoryStatsStore()
    with pytest.raises(ValueError):
        await store.record_outcome(1, "forfeit")


@pytest.mark.anyio
async def test_sql_store_round_trip(tmp_path) -> None:
    store = SqlStatsStore(f"sqlite:///{tmp_path / 'game.db'}")
    await store.init()
    try:
        await store.get_or_create_player(1, "alice")
        await store.record_outcome(1, "win")
        await store.record_outcome(2, "loss")
        assert (await store.get_stats(1))["wins"] == 1
        assert (await store.get_stats(2))["losses"] == 1
        assert (await store.get_stats(2))["total_games"] == 1
        assert await store.get_stats(3) is None

        # Повторный get_or_create не обнуляет счёт
        again = await store.get_or_create_player(1, "alice")
        assert again["wins"] == 1
    finally:
        await store.close()


@pytest.mark.anyio
async def test_sql_store_upserts_games(tmp_path) -> None:
    from sqlalchemy import select

    from tictactoe.storage import GameRecord

    store = SqlStatsStore(f"sqlite:///{tmp_path / 'game.db'}")
    await store.init()
    game = _finished_game()
    try:
        game.status = GameStatus.ACTIVE
        game.outcome = None
        await store.save_game(game, 1, 2)
        game.status = GameStatus.FINISHED
        game.outcome = Outcome.X
        await store.save_game(game, 1, 2)
        async with store._sessions() as session:
            rows = (await session.execute(select(GameRecord))).scalars().all()
        assert len(rows) == 1
        assert rows[0].result == "X"
        assert rows[0].status == "finished"
        assert json.loads(rows[0].board)[0] == ["X", "X", "X"]
    finally:
        await store.close()


@pytest.mark.anyio
async def test_create_sink_memory_url() -> None:
    sink = await create_sink("memory://")
    assert isinstance(sink, MemoryStatsStore)
