from fastapi import APIRouter

from app.modules.places.routes import router as places_router
from app.modules.connections.routes import router as connections_router
from app.modules.messaging.routes import router as messaging_router

api_router = APIRouter()

api_router.include_router(places_router)
api_router.include_router(connections_router)
api_router.include_router(messaging_router)
