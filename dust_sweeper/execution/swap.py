from __future__ import annotations

from typing import Any, Callable

from loguru import logger

from dust_sweeper.errors import (
    SwapExecutionReverted,
    SwapRejectedByUser,
    decode_error,
    is_user_rejection,
)
from dust_sweeper.models import SwapParameters


class SwapExecutor:
    """Submits the batched swap and hands back the transaction hash.

    Submission is the success signal; the receipt is left for the caller to
    watch. Failed submissions are decoded and never resent.
    """

    def __init__(
        self,
        wallet,
        router_address: str,
        gas_limit_buffer_bps: int = 2000,
        confirm: Callable[[str, dict[str, Any]], bool] | None = None,
    ):
        self.wallet = wallet
        self.router_address = router_address
        self.gas_limit_buffer_bps = gas_limit_buffer_bps
        self.confirm = confirm

    def execute(self, params: SwapParameters, account: str, chain_id: int, gas_estimate: int | None = None) -> str:
        router = self.wallet.router(self.router_address)
        tx_params: dict[str, Any] = {"from": account, "chainId": chain_id}
        if gas_estimate:
            tx_params["gas"] = gas_estimate * (10_000 + self.gas_limit_buffer_bps) // 10_000
        try:
            tx = router.functions.executeBulkSwap(
                list(params.addresses), list(params.amounts), params.min_receive
            ).build_transaction(tx_params)
        except Exception as e:
            raise SwapExecutionReverted(f"Swap failed: {decode_error(e)}") from e

        if self.confirm is not None and not self.confirm(
            "swap",
            {
                "tokens": list(params.addresses),
                "amounts": list(params.amounts),
                "min_receive": params.min_receive,
            },
        ):
            raise SwapRejectedByUser("Swap transaction was rejected by user")

        try:
            tx_hash = self.wallet.send_tx(tx)
        except Exception as e:
            if is_user_rejection(e):
                raise SwapRejectedByUser("Swap transaction was rejected by user") from e
            reason = decode_error(e)
            logger.warning("Swap submission failed ({}): {}", reason, e)
            raise SwapExecutionReverted(f"Swap failed: {reason}") from e
        logger.info("Bulk swap submitted: {}", tx_hash)
        return tx_hash
