from collections.abc import Generator

from fastapi import Header
from sqlalchemy.orm import Session

from stockroom.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor_id(x_actor_id: str | None = Header(default=None, max_length=100)) -> str | None:
    """Principal id forwarded by the auth proxy; used for audit attribution only."""
    if x_actor_id is None:
        return None
    return x_actor_id.strip() or None
