from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select

from dust_sweeper.db import SwapAttempt, session_scope


@dataclass
class Summary:
    total_attempts: int
    submitted: int
    dry_run: int
    rejected: int
    failed: int
    tokens_swept: int


def get_summary(SessionFactory) -> Summary:
    def count(s, status: str) -> int:
        return s.scalar(select(func.count()).select_from(SwapAttempt).where(SwapAttempt.status == status)) or 0

    with session_scope(SessionFactory) as s:
        total = s.scalar(select(func.count()).select_from(SwapAttempt)) or 0
        swept = s.scalar(
            select(func.coalesce(func.sum(SwapAttempt.token_count), 0)).where(SwapAttempt.status == "submitted")
        ) or 0
        return Summary(
            total_attempts=total,
            submitted=count(s, "submitted"),
            dry_run=count(s, "dry_run"),
            rejected=count(s, "rejected"),
            failed=count(s, "failed"),
            tokens_swept=int(swept),
        )
