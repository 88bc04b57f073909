from __future__ import annotations

from loguru import logger

from dust_sweeper.errors import DustTooSmall, QuoteFailed, decode_error
from dust_sweeper.models import QuoteResult, SwapPlan


class QuoteValidator:
    """Reads expected output from the router and rejects plans that price to zero.

    The aggregate ``getBulkSwapQuote`` total is the figure passed downstream.
    Per-token quotes are checked and shown to the user but never summed in its
    place: the router's bulk pricing can differ from independent quotes.
    """

    def __init__(self, wallet, router_address: str):
        self.wallet = wallet
        self.router_address = router_address

    def quote(self, plan: SwapPlan) -> QuoteResult:
        router = self.wallet.router(self.router_address)

        per_token: list[int] = []
        for entry in plan.entries:
            symbol = entry.token.symbol
            try:
                q = int(router.functions.getSwapQuote(entry.address, entry.amount).call())
            except Exception as e:
                logger.warning("getSwapQuote failed for {}: {}", symbol, e)
                raise QuoteFailed(f"Failed to validate {symbol} quote: {decode_error(e)}") from e
            if q == 0:
                raise DustTooSmall(f"Swap amount too small for {symbol}. Please increase the amount.")
            logger.debug("Quote {}: {} -> {}", symbol, entry.amount, q)
            per_token.append(q)

        try:
            total, bulk_per_token = router.functions.getBulkSwapQuote(plan.addresses, plan.amounts).call()
        except Exception as e:
            logger.warning("getBulkSwapQuote failed: {}", e)
            raise QuoteFailed(f"Failed to validate bulk quote: {decode_error(e)}") from e
        total = int(total)
        if total == 0:
            raise DustTooSmall("Swap amounts too small. Total output would be 0.")
        logger.info("Bulk quote for {} tokens: {}", len(plan), total)
        return QuoteResult(
            per_token=tuple(per_token),
            total=total,
            bulk_per_token=tuple(int(x) for x in bulk_per_token or ()),
        )
