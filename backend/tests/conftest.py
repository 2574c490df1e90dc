import os
import sys

import pytest

# Ensure the backend root (containing the `tictactoe` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

# Before any tictactoe import: config is read once and cached
os.environ["DEBUG"] = "1"
os.environ["DATABASE_URL"] = "memory://"
os.environ.pop("TELEGRAM_BOT_TOKEN", None)

from tictactoe.config import get_config  # noqa: E402
from tictactoe.models import Player  # noqa: E402
from tictactoe.rooms import RoomRegistry  # noqa: E402
from tictactoe.storage import MemoryStatsStore  # noqa: E402


class FailingSink(MemoryStatsStore):
    """Хранилище, которое всегда падает на записи."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    async def save_game(self, game, identity_a, identity_b):
        self.calls += 1
        raise RuntimeError("database is down")

    async def record_outcome(self, identity, outcome):
        self.calls += 1
        raise RuntimeError("database is down")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def fresh_config():
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def sink():
    return MemoryStatsStore()


@pytest.fixture
def registry(sink):
    # Создатель комнаты всегда получает X
    return RoomRegistry(sink, coin=lambda: True)


@pytest.fixture
def make_player():
    def _make(n: int) -> Player:
        return Player(connection_id=f"conn-{n}", external_identity=1000 + n, display_name=f"player{n}")
    return _make


@pytest.fixture
def active_room(registry, make_player):
    """Комната с двумя игроками: p1 — X, p2 — O."""
    p1, p2 = make_player(1), make_player(2)
    room_id = registry.create_room(p1)
    registry.join_room(room_id, p2)
    return room_id, p1, p2
