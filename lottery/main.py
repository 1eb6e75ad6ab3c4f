import logging

from fastapi import FastAPI

from lottery.api.routes import router
from lottery.settings import get_log_level

app = FastAPI(title="vrf-lottery", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=get_log_level())
logger = logging.getLogger(__name__)


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "vrf-lottery", "version": "0.1.0"}
