"""Async SQLAlchemy engine and session helpers."""

import ssl
from typing import Any, AsyncGenerator, Dict, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.config import settings

def _normalize_db_url(url: str) -> str:
    """Ensure an async-capable driver is selected.

    Bare "postgresql://" / "postgres://" URLs switch to asyncpg. Any URL that
    already names a driver (e.g. "sqlite+aiosqlite://") is left alone.
    """
    try:
        u = make_url(url)
        driver = (u.drivername or "").lower()
        if "+" in driver:
            return u.render_as_string(hide_password=False)
        if driver in ("postgres", "postgresql"):
            u = u.set(drivername="postgresql+asyncpg")
        return u.render_as_string(hide_password=False)
    except Exception:
        # Fallback string-level normalization for odd/partial URLs
        if url.startswith("postgresql://"):
            return "postgresql+asyncpg://" + url.split("://", 1)[1]
        if url.startswith("postgres://"):
            return "postgresql+asyncpg://" + url.split("://", 1)[1]
        return url


def _prepare_connection(url: str) -> Tuple[str, Dict[str, Any]]:
    """Strip query args asyncpg rejects and derive driver connect kwargs."""

    normalized_url = _normalize_db_url(url)
    if not normalized_url.startswith("postgresql+asyncpg://"):
        return normalized_url, {}

    split = urlsplit(normalized_url)
    query_pairs = parse_qsl(split.query, keep_blank_values=True)

    sslmode = None
    filtered_pairs = []
    for key, value in query_pairs:
        if key == "sslmode":
            sslmode = value
            continue
        if key == "channel_binding":
            continue
        filtered_pairs.append((key, value))

    cleaned_query = urlencode(filtered_pairs, doseq=True)
    cleaned_url = urlunsplit(split._replace(query=cleaned_query)).rstrip("?")

    connect_args: Dict[str, Any] = {}
    if sslmode and sslmode.lower() not in {"allow", "prefer"}:
        # allow/prefer: asyncpg negotiates TLS itself when the server asks for it
        connect_args["ssl"] = _ssl_for_mode(sslmode.lower())

    return cleaned_url, connect_args


def _ssl_for_mode(mode: str) -> ssl.SSLContext | bool:
    """Map a libpq sslmode to asyncpg's ``ssl`` argument."""
    if mode == "disable":
        return False
    context = ssl.create_default_context()
    if mode == "require":
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    elif mode == "verify-ca":
        # Certificate chain is checked, the host name is not
        context.check_hostname = False
    # verify-full and unknown modes keep full verification
    return context


DATABASE_URL, CONNECT_ARGS = _prepare_connection(settings.database_url)

engine = create_async_engine(
    DATABASE_URL,
    echo=settings.sql_echo,
    pool_pre_ping=True,
    connect_args=CONNECT_ARGS,
)
SessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with SessionLocal() as session:
        yield session

async def init_db():
    """Initialize the database (create tables)."""
    # Import locally so metadata is populated without a circular import
    from app.schemas import players  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

async def dispose_engine() -> None:
    """Dispose of the async engine and its connection pool."""
    await engine.dispose()

def describe_database_url(url: str) -> str:
    """Return a sanitized description of the DB URL for logging (no password)."""
    try:
        u = make_url(url)
        auth = u.username or "?"
        host = u.host or "?"
        port = f":{u.port}" if u.port else ""
        db = u.database or "?"
        return f"{u.drivername}://{auth}@{host}{port}/{db}"
    except Exception:
        return "<unparseable database URL>"
