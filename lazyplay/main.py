import logging
import os

from fastapi import FastAPI

from lazyplay.api.routes import router

# Configure logging
logging.basicConfig(level=os.environ.get("LAZYPLAY_LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

app = FastAPI(title="lazyplay", version="0.1.0")
app.include_router(router)


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "lazyplay", "version": "0.1.0"}
