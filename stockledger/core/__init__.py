from .config import settings
from .database import engine, SessionLocal, get_db, Base
from .transaction import atomic, retry_on_conflict

__all__ = ["settings", "engine", "SessionLocal", "get_db", "Base", "atomic", "retry_on_conflict"]
