from shared.database import Base, get_engine, get_session

from .config import BOOKING_DB, BOOKING_DB_ECHO

engine = get_engine(BOOKING_DB, echo=BOOKING_DB_ECHO)

SessionLocal = get_session(engine)

__all__ = ["Base", "engine", "SessionLocal", "get_db"]


async def get_db():
    async with SessionLocal() as session:
        yield session
