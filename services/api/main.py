import json

from fastapi import FastAPI
from pydantic import BaseModel
from sqlalchemy import select

from dust_sweeper.analytics.metrics import get_summary
from dust_sweeper.config import AppSettings
from dust_sweeper.db import SwapAttempt, make_session_factory

app = FastAPI(title="Dust Sweeper API")
settings = AppSettings()
SessionFactory = make_session_factory(settings.database_url)


class AttemptOut(BaseModel):
    id: int
    run_id: str
    account: str | None
    chain_id: int | None
    status: str
    stage: str | None
    tx_hash: str | None
    token_count: int
    addresses: list[str]
    amounts: list[str]
    min_receive: str | None
    quote_total: str | None
    error: str | None

    @classmethod
    def from_model(cls, m: SwapAttempt):
        return cls(
            id=m.id,
            run_id=m.run_id,
            account=m.account,
            chain_id=m.chain_id,
            status=m.status,
            stage=m.stage,
            tx_hash=m.tx_hash,
            token_count=m.token_count,
            addresses=json.loads(m.addresses) if m.addresses else [],
            amounts=json.loads(m.amounts) if m.amounts else [],
            min_receive=m.min_receive,
            quote_total=m.quote_total,
            error=m.error,
        )


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/attempts")
def list_attempts(limit: int = 50, status: str | None = None):
    from dust_sweeper.db import session_scope

    with session_scope(SessionFactory) as s:
        q = select(SwapAttempt).order_by(SwapAttempt.id.desc()).limit(limit)
        if status:
            q = q.where(SwapAttempt.status == status)
        rows = s.execute(q).scalars().all()
        return [AttemptOut.from_model(r).model_dump() for r in rows]


@app.get("/summary")
def summary():
    s = get_summary(SessionFactory)
    return s.__dict__
