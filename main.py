import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from app.api import router
from app.session_socket import socket_router
from app.config import LOG_LEVEL, PORT
from lib_database.database import Database

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    database = Database()
    if not await database.connect():
        logger.warning("Starting without a database connection")
    app.state.database = database

    yield

    # Shutdown
    await database.disconnect()


app = FastAPI(title="Jarvis Usage API", version="1.0.0", lifespan=lifespan)
app.include_router(router)
app.include_router(socket_router)


@app.get("/health", tags=["Health"])
async def health():
    database = getattr(app.state, "database", None)
    connected = database is not None and database.is_connected
    return {"status": "healthy", "database": "connected" if connected else "disconnected"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
