"""Database package"""

from workorders.db.session import AsyncSessionLocal, engine, get_db
from workorders.models.base import Base

__all__ = ["Base", "AsyncSessionLocal", "engine", "get_db"]
