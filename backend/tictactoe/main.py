"""
Tic-Tac-Toe API и WebSocket.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from .config import get_config
from .storage import create_sink
from .ws_handlers import GameServices, ws_auth_and_loop

config = get_config()

logging.basicConfig(
    level=getattr(logging, config.log_level, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    sink = await create_sink(config.database_url, echo=config.debug)
    app.state.services = GameServices(sink)
    logger.info("Server ready, database=%s", config.database_url)
    try:
        yield
    finally:
        await sink.close()
        logger.info("Server stopped")


app = FastAPI(title="Tic-Tac-Toe API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/api/stats/{telegram_id}")
async def player_stats(telegram_id: int, request: Request):
    sink = request.app.state.services.sink
    stats = await sink.get_stats(telegram_id)
    return stats or {"telegram_id": telegram_id, "wins": 0, "losses": 0, "draws": 0, "total_games": 0}


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    logger.info("WS: connection attempt from %s", ws.client)
    await ws_auth_and_loop(ws, ws.app.state.services)
