"""
Хранилище статистики игроков и истории партий.
Ядро знает только протокол StatsSink; реализации — in-memory и SQLAlchemy (SQLite/aiosqlite).
"""
import json
import logging
from datetime import datetime, timezone
from typing import Literal, Protocol

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .constants import PlayerStats
from .models import Game

logger = logging.getLogger(__name__)

OutcomeLabel = Literal["win", "loss", "draw"]
_OUTCOME_FIELDS = {"win": "wins", "loss": "losses", "draw": "draws"}

MEMORY_URL = "memory://"


class StatsSink(Protocol):
    async def save_game(self, game: Game, identity_a: int, identity_b: int) -> None: ...

    async def record_outcome(self, identity: int, outcome: OutcomeLabel) -> None: ...

    async def get_or_create_player(self, identity: int, display_name: str) -> PlayerStats: ...

    async def get_stats(self, identity: int) -> PlayerStats | None: ...

    async def close(self) -> None: ...


def _empty_stats(identity: int) -> PlayerStats:
    return {"telegram_id": identity, "wins": 0, "losses": 0, "draws": 0, "total_games": 0}


def _outcome_field(outcome: str) -> str:
    try:
        return _OUTCOME_FIELDS[outcome]
    except KeyError:
        raise ValueError(f"unknown outcome {outcome!r}") from None


def _board_json(game: Game) -> str:
    return json.dumps([[c.value if c else None for c in row] for row in game.board])


class MemoryStatsStore:
    """Хранилище в памяти процесса (тесты, DATABASE_URL=memory://)."""

    def __init__(self) -> None:
        self.players: dict[int, dict] = {}
        self.games: dict[str, dict] = {}

    async def save_game(self, game: Game, identity_a: int, identity_b: int) -> None:
        self.games[game.id] = {
            "id": game.id,
            "player1_id": identity_a,
            "player2_id": identity_b,
            "board": _board_json(game),
            "current_player": game.turn.value,
            "status": game.status.value,
            "result": game.outcome.value if game.outcome else None,
        }

    async def record_outcome(self, identity: int, outcome: OutcomeLabel) -> None:
        field_name = _outcome_field(outcome)
        row = self.players.setdefault(identity, {**_empty_stats(identity), "username": ""})
        row[field_name] += 1
        row["total_games"] += 1

    async def get_or_create_player(self, identity: int, display_name: str) -> PlayerStats:
        row = self.players.setdefault(identity, {**_empty_stats(identity), "username": display_name})
        return self._stats(row)

    async def get_stats(self, identity: int) -> PlayerStats | None:
        row = self.players.get(identity)
        return self._stats(row) if row else None

    async def close(self) -> None:
        pass

    @staticmethod
    def _stats(row: dict) -> PlayerStats:
        return {
            "telegram_id": row["telegram_id"],
            "wins": row["wins"],
            "losses": row["losses"],
            "draws": row["draws"],
            "total_games": row["total_games"],
        }


Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlayerRecord(Base):
    __tablename__ = "players"

    telegram_id = Column(BigInteger, primary_key=True)
    username = Column(String(255), nullable=False, default="")
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    draws = Column(Integer, nullable=False, default=0)
    total_games = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    def to_stats(self) -> PlayerStats:
        return {
            "telegram_id": self.telegram_id,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "total_games": self.total_games,
        }


class GameRecord(Base):
    __tablename__ = "games"

    id = Column(String(36), primary_key=True)
    player1_id = Column(BigInteger, nullable=False)
    player2_id = Column(BigInteger, nullable=False)
    board = Column(Text, nullable=False)
    current_player = Column(String(1), nullable=False)
    status = Column(String(16), nullable=False)
    result = Column(String(8), nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


def async_database_url(database_url: str) -> str:
    """sqlite:/// -> sqlite+aiosqlite:///, postgresql:// -> postgresql+asyncpg://"""
    if database_url.startswith("sqlite:///"):
        return database_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


class SqlStatsStore:
    """Статистика и история партий в SQL (по умолчанию SQLite через aiosqlite)."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self.database_url = async_database_url(database_url)
        self._engine = create_async_engine(self.database_url, echo=echo, future=True)
        self._sessions = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)

    async def init(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialized: %s", self.database_url)

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("Database connection closed")

    async def save_game(self, game: Game, identity_a: int, identity_b: int) -> None:
        async with self._sessions() as session, session.begin():
            await session.merge(
                GameRecord(
                    id=game.id,
                    player1_id=identity_a,
                    player2_id=identity_b,
                    board=_board_json(game),
                    current_player=game.turn.value,
                    status=game.status.value,
                    result=game.outcome.value if game.outcome else None,
                    updated_at=_utcnow(),
                )
            )

    async def record_outcome(self, identity: int, outcome: OutcomeLabel) -> None:
        field_name = _outcome_field(outcome)
        async with self._sessions() as session, session.begin():
            row = await session.get(PlayerRecord, identity)
            if row is None:
                row = self._new_record(identity, "")
                session.add(row)
            setattr(row, field_name, getattr(row, field_name) + 1)
            row.total_games += 1

    async def get_or_create_player(self, identity: int, display_name: str) -> PlayerStats:
        async with self._sessions() as session, session.begin():
            row = await session.get(PlayerRecord, identity)
            if row is None:
                row = self._new_record(identity, display_name)
                session.add(row)
            return row.to_stats()

    async def get_stats(self, identity: int) -> PlayerStats | None:
        async with self._sessions() as session:
            row = await session.get(PlayerRecord, identity)
            return row.to_stats() if row else None

    @staticmethod
    def _new_record(identity: int, display_name: str) -> PlayerRecord:
        return PlayerRecord(
            telegram_id=identity,
            username=display_name,
            wins=0,
            losses=0,
            draws=0,
            total_games=0,
        )


async def create_sink(database_url: str, echo: bool = False) -> StatsSink:
    """Выбрать хранилище по DATABASE_URL и подготовить схему."""
    if database_url == MEMORY_URL:
        return MemoryStatsStore()
    store = SqlStatsStore(database_url, echo=echo)
    await store.init()
    return store
