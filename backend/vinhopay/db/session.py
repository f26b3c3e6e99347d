"""Database session. SQLite for development, PostgreSQL in production."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from vinhopay.core.config import settings

connect_args = (
    {"check_same_thread": False}
    if settings.DATABASE_URL.startswith("sqlite")
    else {}
)

if settings.DATABASE_URL.startswith("sqlite"):
    # SQLite: Use NullPool for thread-safety
    from sqlalchemy.pool import NullPool
    engine = create_engine(
        settings.DATABASE_URL,
        connect_args=connect_args,
        poolclass=NullPool
    )
else:
    # PostgreSQL: row locks (FOR UPDATE SKIP LOCKED) are only honoured here
    engine = create_engine(
        settings.DATABASE_URL,
        connect_args=connect_args,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
        client_encoding="utf8",
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
