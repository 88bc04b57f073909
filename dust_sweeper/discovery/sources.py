from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import requests
from loguru import logger

from dust_sweeper.models import TokenRecord


def parse_token_rows(payload: Any) -> list[TokenRecord]:
    # Accept a bare list or {"tokens": [...]} / {"data": [...]}
    if isinstance(payload, dict):
        payload = payload.get("tokens") or payload.get("data") or []
    if not isinstance(payload, list):
        return []
    out: list[TokenRecord] = []
    for row in payload:
        if not isinstance(row, dict):
            continue
        addr = row.get("address") or row.get("tokenAddress") or ""
        balance = row.get("balanceFormatted") or row.get("balance_formatted") or row.get("balance")
        if not addr or balance in (None, ""):
            logger.debug("Skipping token row without address/balance: {}", row)
            continue
        value = row.get("valueUSD", row.get("value_usd"))
        try:
            decimals = int(row.get("decimals") if row.get("decimals") is not None else 18)
            value_usd = float(value) if value is not None else None
        except (TypeError, ValueError):
            logger.debug("Skipping token row with malformed decimals/value: {}", row)
            continue
        out.append(
            TokenRecord(
                address=str(addr),
                symbol=str(row.get("symbol") or "UNKNOWN"),
                decimals=decimals,
                balance=str(balance),
                value_usd=value_usd,
                source=str(row.get("source") or "unknown"),
            )
        )
    return out


@dataclass
class HttpTokenSource:
    url: str
    timeout: float = 20.0

    def tokens(self, owner: str) -> list[TokenRecord]:
        r = requests.get(self.url, params={"address": owner}, timeout=self.timeout)
        if not r.ok:
            logger.warning("Token source error ({}): {}", r.status_code, r.text)
            return []
        return parse_token_rows(r.json())


@dataclass
class FileTokenSource:
    path: str

    def tokens(self, owner: str | None = None) -> list[TokenRecord]:
        p = Path(self.path)
        if not p.exists():
            logger.warning("Token snapshot not found: {}", p)
            return []
        return parse_token_rows(json.loads(p.read_text()))


def select_dust(
    tokens: Iterable[TokenRecord],
    max_usd: float = 3.0,
    excluded: Iterable[str] = (),
    target_token: str | None = None,
) -> list[TokenRecord]:
    """Tokens worth less than ``max_usd``, minus exclusions and the target asset, in input order."""
    skip = {a.lower() for a in excluded}
    if target_token:
        skip.add(target_token.lower())
    out: list[TokenRecord] = []
    for t in tokens:
        if t.address.lower() in skip:
            continue
        if t.value_usd is not None and t.value_usd >= max_usd:
            continue
        out.append(t)
    return out
