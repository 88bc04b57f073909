from __future__ import annotations

from typing import Any

import pytest
from web3 import Web3

OWNER = Web3.to_checksum_address("0x1234567890abcdef1234567890abcdef12345678")
ROUTER = Web3.to_checksum_address("0x5ca1ab1e00000000000000000000000000000001")
TOKEN_A = Web3.to_checksum_address("0xa0a0a0a0a0a0a0a0a0a0a0a0a0a0a0a0a0a0a0a0")
TOKEN_B = Web3.to_checksum_address("0xb0b0b0b0b0b0b0b0b0b0b0b0b0b0b0b0b0b0b0b0")
TOKEN_C = Web3.to_checksum_address("0xc0c0c0c0c0c0c0c0c0c0c0c0c0c0c0c0c0c0c0c0")
HIGHER = "0x0578d8A44db98B23BF096A382e016e29a5Ce0ffe"

MAX_ALLOWANCE = 2**256 - 1


class FakeCall:
    def __init__(self, chain: "FakeChain", contract: str, fn: str, args: tuple):
        self.chain = chain
        self.contract = contract
        self.fn = fn
        self.args = args

    def call(self, tx: dict | None = None):
        self.chain.log.append(("call", self.fn, self.contract))
        return self.chain.handle_call(self.contract, self.fn, self.args)

    def estimate_gas(self, tx: dict | None = None):
        self.chain.log.append(("estimate_gas", self.fn, self.contract))
        if self.chain.gas_error is not None:
            raise self.chain.gas_error
        return self.chain.gas

    def build_transaction(self, tx: dict | None = None):
        return {"to": self.contract, "fn": self.fn, "args": self.args, **(tx or {})}


class FakeFunctions:
    def __init__(self, chain: "FakeChain", address: str):
        self._chain = chain
        self._address = address

    def __getattr__(self, fn: str):
        return lambda *args: FakeCall(self._chain, self._address, fn, args)


class FakeContract:
    def __init__(self, chain: "FakeChain", address: str):
        self.address = address
        self.functions = FakeFunctions(chain, address)


class FakeChain:
    """In-memory stand-in for EvmWallet: token allowances, router quotes, tx log."""

    def __init__(self, address: str | None = OWNER, chain_id: int = 8453, router: str = ROUTER):
        self.address = address
        self.chain_id = chain_id
        self.code: dict[str, bytes] = {router.lower(): b"\x60\x80\x60\x40"}
        self.allowances: dict[str, int] = {}
        self.allowance_errors: set[str] = set()
        self.quotes: dict[str, int] = {}
        self.default_quote = 1_000
        self.bulk_total = 1_000_000
        self.gas = 250_000
        self.gas_error: Exception | None = None
        self.send_errors: dict[str, Exception] = {}  # token/router address -> error
        self.receipt_status = 1
        self.log: list[tuple[str, str, str]] = []
        self.sent: list[dict[str, Any]] = []
        self._pending: dict[str, dict[str, Any]] = {}

    # wallet surface
    def erc20(self, addr: str) -> FakeContract:
        return FakeContract(self, addr)

    def router(self, addr: str) -> FakeContract:
        return FakeContract(self, addr)

    def get_chain_id(self) -> int:
        return self.chain_id

    def get_code(self, addr: str) -> bytes:
        return self.code.get(addr.lower(), b"")

    def send_tx(self, tx: dict) -> str:
        self.log.append(("send", tx["fn"], tx["to"]))
        err = self.send_errors.get(tx["to"].lower())
        if err is not None:
            raise err
        self.sent.append(tx)
        tx_hash = "0x" + f"{len(self.sent):064x}"
        self._pending[tx_hash] = tx
        return tx_hash

    def wait_for_receipt(self, tx_hash: str, timeout: float = 120):
        tx = self._pending.pop(tx_hash)
        if self.receipt_status == 1 and tx["fn"] == "approve":
            self.allowances[tx["to"].lower()] = tx["args"][1]
        return {"status": self.receipt_status, "transactionHash": tx_hash}

    # contract behaviour
    def handle_call(self, contract: str, fn: str, args: tuple):
        if fn == "allowance":
            if contract.lower() in self.allowance_errors:
                raise ValueError("Could not decode contract function call")
            return self.allowances.get(contract.lower(), 0)
        if fn == "getSwapQuote":
            return self.quotes.get(args[0].lower(), self.default_quote)
        if fn == "getBulkSwapQuote":
            return (self.bulk_total, [self.quotes.get(a.lower(), self.default_quote) for a in args[0]])
        raise AssertionError(f"unexpected call {fn}")

    # helpers
    def approve_all(self, *tokens: str) -> None:
        for t in tokens:
            self.allowances[t.lower()] = MAX_ALLOWANCE

    @property
    def approvals(self) -> list[dict[str, Any]]:
        return [tx for tx in self.sent if tx["fn"] == "approve"]

    @property
    def swaps(self) -> list[dict[str, Any]]:
        return [tx for tx in self.sent if tx["fn"] == "executeBulkSwap"]

    def index_of(self, kind: str, fn: str) -> int:
        for i, (k, f, _) in enumerate(self.log):
            if k == kind and f == fn:
                return i
        return -1

    def called(self, fn: str) -> bool:
        return any(f == fn for _, f, _ in self.log)


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def settings(tmp_path):
    from dust_sweeper.config import AppSettings

    return AppSettings(
        router_address=ROUTER,
        dry_run=False,
        tokens_config=str(tmp_path / "tokens.yaml"),
        database_url=f"sqlite+pysqlite:///{tmp_path / 'dust.db'}",
    )
