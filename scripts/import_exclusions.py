from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import yaml


def load_tokens_yaml(path: Path) -> dict:
    if not path.exists():
        return {"tokens": []}
    return yaml.safe_load(path.read_text()) or {"tokens": []}


def save_tokens_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False))


def parse_addresses(payload: Any) -> list[str]:
    # Accept a list of strings, list of objects with 'address', or newline-separated strings
    if isinstance(payload, list):
        if all(isinstance(x, str) for x in payload):
            return [x for x in payload if x]
        if all(isinstance(x, dict) for x in payload):
            addrs: list[str] = []
            for row in payload:
                a = row.get("address") or row.get("tokenAddress")
                if a:
                    addrs.append(a)
            return addrs
    if isinstance(payload, str):
        return [line.strip() for line in payload.splitlines() if line.strip()]
    return []


def upsert(tokens: list[dict], address: str, notes: str | None) -> None:
    norm_addr = address.lower()
    for t in tokens:
        if str(t.get("address") or "").lower() == norm_addr:
            if notes and not t.get("notes"):
                t["notes"] = notes
            return
    item: dict = {"address": norm_addr}
    if notes:
        item["notes"] = notes
    tokens.append(item)


def main() -> int:
    p = argparse.ArgumentParser(description="Add token addresses to the sweep exclusion list")
    p.add_argument("--input", "-i", help="Input file (JSON array or newline-separated addresses). If omitted, reads stdin.")
    p.add_argument("--tokens-yaml", default="config/tokens.yaml", help="Path to tokens.yaml")
    p.add_argument("--notes", default=None, help="Note stored with newly added entries")
    args = p.parse_args()

    raw = Path(args.input).read_text() if args.input else sys.stdin.read()
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        payload = raw

    addrs = [a for a in parse_addresses(payload) if a.startswith("0x")]
    if not addrs:
        print("No addresses parsed from input", file=sys.stderr)
        return 1

    path = Path(args.tokens_yaml)
    data = load_tokens_yaml(path)
    tokens: list[dict] = data.get("tokens") or []
    for a in addrs:
        upsert(tokens, a, args.notes)
    data["tokens"] = tokens
    save_tokens_yaml(path, data)
    print(f"Excluded {len(addrs)} tokens in {path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
