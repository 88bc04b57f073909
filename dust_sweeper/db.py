from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime
from typing import Generator

from sqlalchemy import DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from dust_sweeper.models import PipelineRun


class Base(DeclarativeBase):
    pass


class SwapAttempt(Base):
    __tablename__ = "swap_attempts"

    id: Mapped[int] = mapped_column(primary_key=True)
    run_id: Mapped[str] = mapped_column(String(64), index=True)
    account: Mapped[str | None] = mapped_column(String(64), index=True)
    chain_id: Mapped[int | None] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(32), index=True)  # submitted|dry_run|rejected|failed
    stage: Mapped[str | None] = mapped_column(String(32))  # last stage reached
    tx_hash: Mapped[str | None] = mapped_column(String(80), index=True)
    token_count: Mapped[int] = mapped_column(Integer, default=0)
    addresses: Mapped[str | None] = mapped_column(Text)  # JSON list
    amounts: Mapped[str | None] = mapped_column(Text)  # JSON list of decimal strings
    min_receive: Mapped[str | None] = mapped_column(String(80))
    quote_total: Mapped[str | None] = mapped_column(String(80))
    error: Mapped[str | None] = mapped_column(Text)
    error_type: Mapped[str | None] = mapped_column(String(64))
    started_at: Mapped[datetime] = mapped_column(DateTime)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


def make_engine(database_url: str):
    return create_engine(database_url, pool_pre_ping=True, future=True)


def make_session_factory(database_url: str):
    engine = make_engine(database_url)
    # Migrations are managed via Alembic. We intentionally avoid create_all here.
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session)


@contextmanager
def session_scope(SessionFactory) -> Generator[Session, None, None]:
    session: Session = SessionFactory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def record_run(SessionFactory, run: PipelineRun) -> int:
    """Append a finished run to the history table; returns the row id."""
    plan = run.plan
    with session_scope(SessionFactory) as s:
        row = SwapAttempt(
            run_id=run.run_id,
            account=run.account,
            chain_id=run.chain_id,
            status=run.status.value,
            stage=run.stage.value if run.stage else None,
            tx_hash=run.tx_hash,
            token_count=len(plan) if plan else 0,
            addresses=json.dumps(plan.addresses) if plan else None,
            amounts=json.dumps([str(a) for a in plan.amounts]) if plan else None,
            min_receive=str(run.params.min_receive) if run.params else None,
            quote_total=str(run.quote.total) if run.quote else None,
            error=run.error,
            error_type=run.error_type,
            started_at=run.started_at.replace(tzinfo=None),
            finished_at=run.finished_at.replace(tzinfo=None) if run.finished_at else None,
        )
        s.add(row)
        s.flush()
        return row.id
