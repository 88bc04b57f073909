from __future__ import annotations

import json
from typing import Any

from conftest import HIGHER, TOKEN_A, TOKEN_B, TOKEN_C


class FakeResp:
    def __init__(self, ok: bool, payload: Any, status_code: int = 200):
        self.ok = ok
        self._payload = payload
        self.status_code = status_code if ok else 500
        self.text = "ok" if ok else "Internal error"

    def json(self):
        return self._payload


ROWS = [
    {"address": TOKEN_A, "symbol": "AAA", "decimals": 6, "balanceFormatted": "1.5", "valueUSD": 1.2},
    {"tokenAddress": TOKEN_B, "symbol": "BBB", "balance": "2", "value_usd": 25.0, "source": "moralis"},
    {"address": TOKEN_C, "symbol": "CCC", "decimals": 0, "balance_formatted": "600"},
    {"address": HIGHER, "symbol": "HIGHER", "balanceFormatted": "3", "valueUSD": 0.1},
    {"symbol": "NOADDR", "balance": "1"},
]


def test_parse_token_rows_shapes():
    from dust_sweeper.discovery.sources import parse_token_rows

    tokens = parse_token_rows({"tokens": ROWS})
    assert [t.symbol for t in tokens] == ["AAA", "BBB", "CCC", "HIGHER"]
    assert tokens[0].decimals == 6 and tokens[0].balance == "1.5"
    assert tokens[1].decimals == 18 and tokens[1].source == "moralis"
    assert tokens[2].value_usd is None
    assert parse_token_rows({"data": ROWS[:1]})[0].address == TOKEN_A
    assert parse_token_rows("garbage") == []


def test_malformed_rows_are_skipped():
    from dust_sweeper.discovery.sources import parse_token_rows

    rows = [
        {"address": TOKEN_A, "symbol": "AAA", "decimals": "six", "balance": "1"},
        {"address": TOKEN_B, "symbol": "BBB", "balance": "2", "valueUSD": "n/a"},
        {"address": TOKEN_C, "symbol": "CCC", "decimals": [18], "balance": "3"},
        {"address": HIGHER, "symbol": "HIGHER", "decimals": "18", "balance": "4", "valueUSD": "0.5"},
    ]
    tokens = parse_token_rows(rows)
    assert [t.symbol for t in tokens] == ["HIGHER"]
    assert tokens[0].decimals == 18
    assert tokens[0].value_usd == 0.5


def test_http_source_passes_owner(monkeypatch):
    from dust_sweeper.discovery.sources import HttpTokenSource

    calls: list[dict[str, Any]] = []

    def fake_get(url, params=None, timeout=None, headers=None):
        calls.append({"url": url, **(params or {})})
        return FakeResp(True, ROWS)

    monkeypatch.setattr("requests.get", fake_get)
    out = HttpTokenSource("https://tokens.example/api/tokens").tokens("0xowner")
    assert len(out) == 4
    assert calls == [{"url": "https://tokens.example/api/tokens", "address": "0xowner"}]


def test_http_source_error_returns_empty(monkeypatch):
    from dust_sweeper.discovery.sources import HttpTokenSource

    monkeypatch.setattr("requests.get", lambda url, params=None, timeout=None: FakeResp(False, {}))
    assert HttpTokenSource("https://tokens.example").tokens("0xowner") == []


def test_file_source(tmp_path):
    from dust_sweeper.discovery.sources import FileTokenSource

    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(ROWS))
    assert len(FileTokenSource(str(path)).tokens()) == 4
    assert FileTokenSource(str(tmp_path / "missing.json")).tokens() == []


def test_select_dust_filters_value_exclusions_and_target():
    from dust_sweeper.discovery.sources import parse_token_rows, select_dust

    tokens = parse_token_rows(ROWS)
    dust = select_dust(tokens, max_usd=3.0, target_token=HIGHER.lower())
    assert [t.symbol for t in dust] == ["AAA", "CCC"]

    dust = select_dust(tokens, max_usd=3.0, excluded={TOKEN_C.lower()}, target_token=HIGHER)
    assert [t.symbol for t in dust] == ["AAA"]
