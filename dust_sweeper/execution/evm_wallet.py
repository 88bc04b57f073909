from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path

import requests
from eth_account import Account
from loguru import logger
from web3 import Web3
from web3.providers.rpc.utils import ExceptionRetryConfiguration


def _load_abi(rel_path: str):
    path = Path(__file__).resolve().parent.parent / "abi" / rel_path
    return json.loads(path.read_text())


ERC20_ABI = _load_abi("erc20.json")
SPLIT_ROUTER_ABI = _load_abi("split_router.json")


@dataclass
class EvmWallet:
    w3: Web3
    chain_id: int
    private_key: str | None
    address: str | None
    max_fee_gwei: float | None = None
    max_priority_fee_gwei: float | None = None
    # one transaction in flight per account keeps nonces ordered
    _send_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @classmethod
    def create(
        cls,
        rpc_url: str,
        chain_id: int,
        private_key: str | None,
        explicit_address: str | None,
        retry_count: int = 3,
        retry_delay_sec: float = 2.0,
        timeout_sec: float = 10.0,
        max_fee_gwei: float | None = None,
        max_priority_fee_gwei: float | None = None,
    ):
        provider = Web3.HTTPProvider(
            rpc_url,
            request_kwargs={"timeout": timeout_sec},
            exception_retry_configuration=ExceptionRetryConfiguration(
                errors=(ConnectionError, requests.HTTPError, requests.Timeout),
                retries=retry_count,
                backoff_factor=retry_delay_sec,
            ),
        )
        w3 = Web3(provider)
        addr = explicit_address
        if private_key and not addr:
            addr = Account.from_key(private_key).address
        logger.info("Connected to EVM provider: {} (chain id {})", rpc_url, chain_id)
        if addr:
            logger.info("Sweeping from account: {}", addr)
        return cls(
            w3=w3,
            chain_id=chain_id,
            private_key=private_key,
            address=Web3.to_checksum_address(addr) if addr else None,
            max_fee_gwei=max_fee_gwei,
            max_priority_fee_gwei=max_priority_fee_gwei,
        )

    def erc20(self, token_addr: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(token_addr), abi=ERC20_ABI)

    def router(self, router_addr: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(router_addr), abi=SPLIT_ROUTER_ABI)

    def get_chain_id(self) -> int:
        return int(self.w3.eth.chain_id)

    def get_code(self, addr: str) -> bytes:
        return bytes(self.w3.eth.get_code(Web3.to_checksum_address(addr)))

    def send_tx(self, tx: dict) -> str:
        if not self.private_key:
            raise RuntimeError("Private key required for sending transactions")
        if not self.address:
            raise RuntimeError("Sweeping account address required")
        with self._send_lock:
            tx.setdefault("chainId", self.chain_id)
            tx.setdefault("from", self.address)
            if "nonce" not in tx:
                tx["nonce"] = self.w3.eth.get_transaction_count(self.address, "pending")
            if "gas" not in tx:
                tx["gas"] = self.w3.eth.estimate_gas(tx)
            if self.max_fee_gwei is not None:
                tx["maxFeePerGas"] = self.w3.to_wei(self.max_fee_gwei, "gwei")
            if self.max_priority_fee_gwei is not None:
                tx["maxPriorityFeePerGas"] = self.w3.to_wei(self.max_priority_fee_gwei, "gwei")
            if "maxFeePerGas" not in tx and "gasPrice" not in tx:
                # EIP-1559 defaults
                latest = self.w3.eth.gas_price
                tx["maxFeePerGas"] = latest * 2
                tx.setdefault("maxPriorityFeePerGas", self.w3.to_wei(0.01, "gwei"))
            signed = self.w3.eth.account.sign_transaction(tx, self.private_key)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    def wait_for_receipt(self, tx_hash: str, timeout: float = 120):
        return self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
