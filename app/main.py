from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from app.core.logging import setup_logging
from app.core.init_db import init_db
from app.core.errors import ProximityError, StoreUnavailableError
from app.api.router import api_router

setup_logging()
logger.info("Starting PlaceMeet backend")


app = FastAPI(
    title="PlaceMeet Backend",
    version="0.1.0"
)

# Places, connections and chat
app.include_router(api_router)


@app.exception_handler(ProximityError)
async def proximity_error_handler(request: Request, exc: ProximityError):
    if isinstance(exc, StoreUnavailableError):
        logger.error(f"{request.method} {request.url.path} -> {exc.code}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.kind}:{exc.code}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Init DB after app is created
init_db()

@app.get("/health")
def health():
    logger.debug("Health check hit")
    return {"status": "ok"}
