from loguru import logger
from app.core.db import engine, Base

# Import all models so SQLAlchemy registers them
from app.modules.places.models import Place, Membership  # noqa: F401
from app.modules.connections.models import Connection  # noqa: F401
from app.modules.messaging.models import Message, GroupMessage, GroupMessageRead  # noqa: F401

def init_db():
    logger.info("Creating database tables")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
