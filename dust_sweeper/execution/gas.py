from __future__ import annotations

from loguru import logger

from dust_sweeper.errors import GasEstimationFailed, decode_error
from dust_sweeper.models import SwapParameters


class GasEstimator:
    """Dry-runs ``executeBulkSwap`` so a doomed swap never reaches the signer."""

    def __init__(self, wallet, router_address: str):
        self.wallet = wallet
        self.router_address = router_address

    def estimate(self, params: SwapParameters, account: str) -> int:
        router = self.wallet.router(self.router_address)
        try:
            gas = router.functions.executeBulkSwap(
                list(params.addresses), list(params.amounts), params.min_receive
            ).estimate_gas({"from": account})
        except Exception as e:
            reason = decode_error(e)
            logger.warning("Gas estimation failed ({}): {}", reason, e)
            raise GasEstimationFailed(f"Gas estimation failed: {reason}") from e
        logger.info("Gas estimate for bulk swap: {}", gas)
        return int(gas)
