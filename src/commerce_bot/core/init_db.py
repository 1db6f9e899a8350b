"""Initialize the database tables."""

import logging

from commerce_bot.core.database import Base, engine
from commerce_bot.core import models  # noqa: F401  # registers the tables

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("init_db")

logger.info("Creating database tables...")
Base.metadata.create_all(bind=engine)
logger.info("Tables created successfully!")
