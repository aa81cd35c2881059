"""DB-backed log of contributor fetch sessions (one row per GET /api/contributors).

FETCH_RUN_DATABASE_URL (or DATABASE_URL) selects the database; without either
the log lives in api/logs/contributor_fetch_runs.db. The engine is rebuilt
whenever the configured URL changes, so tests can point each case at its own
file.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import NullPool

from app.models.contributor_response import FetchRun

MAX_LIST_LIMIT = 500


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class FetchRunRecord(Base):
    __tablename__ = "contributor_fetch_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner: Mapped[str] = mapped_column(String, nullable=False, index=True)
    repo: Mapped[str] = mapped_column(String, nullable=False, index=True)
    enhanced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    fetch_all: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    force_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    pages_fetched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_fetched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rate_limit_hit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    warning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    elapsed_ms: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow, index=True)


@dataclass
class _Binding:
    url: str
    engine: Engine
    factory: sessionmaker
    schema_ready: bool = False


_binding: Optional[_Binding] = None


def _database_url() -> str:
    configured = (os.getenv("FETCH_RUN_DATABASE_URL") or os.getenv("DATABASE_URL") or "").strip()
    if configured:
        return configured
    path = Path(__file__).resolve().parents[2] / "logs" / "contributor_fetch_runs.db"
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite+pysqlite:///{path}"


def _bind() -> _Binding:
    global _binding
    url = _database_url()
    if _binding is not None and _binding.url == url:
        return _binding
    reset_engine_cache()
    if url.startswith("sqlite"):
        # one connection per checkout; requests may run on different threads
        engine = create_engine(url, poolclass=NullPool, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(url, pool_pre_ping=True)
    _binding = _Binding(url=url, engine=engine, factory=sessionmaker(bind=engine, expire_on_commit=False))
    return _binding


def reset_engine_cache() -> None:
    global _binding
    if _binding is not None:
        _binding.engine.dispose()
    _binding = None


def ensure_schema() -> None:
    binding = _bind()
    if not binding.schema_ready:
        Base.metadata.create_all(bind=binding.engine)
        binding.schema_ready = True


@contextmanager
def _session() -> Iterator[Session]:
    ensure_schema()
    with _bind().factory.begin() as session:
        yield session


def record_run(
    *,
    owner: str,
    repo: str,
    enhanced: bool,
    fetch_all: bool,
    force_complete: bool,
    status_code: int,
    pages_fetched: int = 0,
    total_fetched: int = 0,
    rate_limit_hit: bool = False,
    warning: Optional[str] = None,
    elapsed_ms: float = 0.0,
) -> FetchRun:
    row = FetchRunRecord(
        owner=owner,
        repo=repo,
        enhanced=enhanced,
        fetch_all=fetch_all,
        force_complete=force_complete,
        status_code=status_code,
        pages_fetched=pages_fetched,
        total_fetched=total_fetched,
        rate_limit_hit=rate_limit_hit,
        warning=warning,
        elapsed_ms=round(float(elapsed_ms), 2),
        created_at=_utcnow(),
    )
    with _session() as session:
        session.add(row)
        session.flush()
        return FetchRun.model_validate(row)


def list_runs(limit: int = 50, owner: Optional[str] = None, repo: Optional[str] = None) -> list[FetchRun]:
    """Newest first; id breaks ties between runs recorded in the same instant."""
    stmt = select(FetchRunRecord)
    if owner:
        stmt = stmt.where(FetchRunRecord.owner == owner)
    if repo:
        stmt = stmt.where(FetchRunRecord.repo == repo)
    stmt = stmt.order_by(FetchRunRecord.created_at.desc(), FetchRunRecord.id.desc())
    stmt = stmt.limit(max(1, min(limit, MAX_LIST_LIMIT)))
    with _session() as session:
        return [FetchRun.model_validate(row) for row in session.scalars(stmt)]


def count_runs() -> int:
    with _session() as session:
        return int(session.scalar(select(func.count(FetchRunRecord.id))) or 0)
