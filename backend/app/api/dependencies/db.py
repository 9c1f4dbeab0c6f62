"""Request-scoped database session."""

from collections.abc import Iterator

from sqlalchemy.orm import Session

from app.db.session import SessionLocal


def get_session() -> Iterator[Session]:
    """Yield a session per request.

    Services commit their own writes; anything left uncommitted when the
    request ends is rolled back on close.
    """
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
