from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Sequence

from loguru import logger
from web3 import Web3

from dust_sweeper.errors import (
    ArrayConsistencyMismatch,
    InvalidBalance,
    InvalidSwapAmount,
    TokenNotFound,
)
from dust_sweeper.models import SwapPlan, SwapPlanEntry, TokenRecord, same_address

UINT128_MAX = (1 << 128) - 1
SMALL_AMOUNT_WARN = 1000


def to_smallest_unit(balance: str, decimals: int) -> int:
    """Scale a decimal balance string by ``decimals``, rounding toward zero."""
    if not 0 <= int(decimals) <= 18:
        raise InvalidBalance(f"Unsupported token decimals: {decimals}")
    try:
        value = Decimal(str(balance).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidBalance(f"Unparseable balance: {balance!r}") from e
    if not value.is_finite() or value <= 0:
        raise InvalidBalance(f"Balance must be a positive number, got {balance!r}")
    return int((value * (Decimal(10) ** int(decimals))).to_integral_value(rounding=ROUND_DOWN))


class SwapPlanBuilder:
    """Builds the ordered (token, address, amount) triples every later stage consumes."""

    def __init__(self, guard_divisor: int = 10_000, guard_min_wei: int = 100_000):
        self.guard_divisor = guard_divisor
        self.guard_min_wei = guard_min_wei

    def guard_buffer(self, balance_wei: int) -> int:
        # proportional hold-back, fixed floor when the balance is too small to yield one
        return balance_wei // self.guard_divisor or self.guard_min_wei

    def spend_amount(self, token: TokenRecord) -> int:
        balance_wei = to_smallest_unit(token.balance, token.decimals)
        amount = balance_wei - self.guard_buffer(balance_wei)
        if amount <= 0:
            raise InvalidBalance(
                f"Balance of {token.symbol} ({token.balance}) is too small to swap safely"
            )
        return amount

    def build(self, selection: Sequence[str], snapshot: Sequence[TokenRecord]) -> SwapPlan:
        by_address: dict[str, TokenRecord] = {}
        for t in snapshot:
            by_address.setdefault(t.address.lower(), t)

        seen: set[str] = set()
        tokens: list[TokenRecord] = []
        addresses: list[str] = []
        amounts: list[int] = []
        for address in selection:
            key = (address or "").lower()
            if key in seen:
                raise ArrayConsistencyMismatch(f"Token {address} selected more than once")
            seen.add(key)
            token = by_address.get(key)
            if token is None:
                raise TokenNotFound(f"Token not found for address: {address}")
            if not Web3.is_address(key):
                raise TokenNotFound(f"Not a valid token address: {address}")
            tokens.append(token)
            addresses.append(Web3.to_checksum_address(key))
            amounts.append(self.spend_amount(token))

        self.verify_alignment(selection, tokens, addresses, amounts)
        self.validate_amounts(tokens, amounts)
        entries = tuple(
            SwapPlanEntry(address=a, amount=amt, token=t)
            for t, a, amt in zip(tokens, addresses, amounts)
        )
        for i, e in enumerate(entries):
            logger.debug("Plan[{}]: {} ({}) = {}", i, e.token.symbol, e.address, e.amount)
        return SwapPlan(entries=entries)

    @staticmethod
    def verify_alignment(
        selection: Sequence[str],
        tokens: Sequence[TokenRecord],
        addresses: Sequence[str],
        amounts: Sequence[int],
    ) -> None:
        if not (len(selection) == len(tokens) == len(addresses) == len(amounts)):
            raise ArrayConsistencyMismatch(
                f"Array length mismatch: selection({len(selection)}), tokens({len(tokens)}), "
                f"addresses({len(addresses)}), amounts({len(amounts)})"
            )
        for i, (sel, token, addr) in enumerate(zip(selection, tokens, addresses)):
            if not (same_address(sel, addr) and same_address(token.address, addr)):
                raise ArrayConsistencyMismatch(
                    f"Address mismatch at index {i}: selection={sel}, "
                    f"token={token.address}, address={addr}"
                )

    @staticmethod
    def validate_amounts(tokens: Sequence[TokenRecord], amounts: Sequence[int]) -> None:
        for token, amount in zip(tokens, amounts):
            if amount <= 0:
                raise InvalidSwapAmount(f"Invalid amount for {token.symbol}: {amount}")
            if amount > UINT128_MAX:
                raise InvalidSwapAmount(f"Amount too large for {token.symbol}: {amount}")
            if amount < SMALL_AMOUNT_WARN:
                logger.warning("{} amount very small: {} units", token.symbol, amount)

    @classmethod
    def verify_plan(cls, selection: Sequence[str], plan: SwapPlan) -> None:
        cls.verify_alignment(selection, plan.tokens, plan.addresses, plan.amounts)
