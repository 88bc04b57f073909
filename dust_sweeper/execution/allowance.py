from __future__ import annotations

from loguru import logger

from dust_sweeper.errors import InsufficientAllowance


class AllowanceChecker:
    """Reads how much of a token the router may currently spend for the owner.

    A failed read (node error, malformed response) yields 0 instead of raising.
    Treating an unknown allowance as none forces an approval that may turn out
    redundant, but never lets a swap go out under-approved.
    """

    def __init__(self, wallet, router_address: str):
        self.wallet = wallet
        self.router_address = router_address

    def allowance(self, token_address: str, owner: str) -> int:
        try:
            erc20 = self.wallet.erc20(token_address)
            value = erc20.functions.allowance(owner, self.router_address).call()
            return int(value or 0)
        except Exception as e:
            logger.warning("allowance() read failed for {}: {} - assuming 0", token_address, e)
            return 0

    @staticmethod
    def require(current: int, required: int, symbol: str) -> None:
        if current < required:
            raise InsufficientAllowance(
                f"{symbol} allowance {current} is below the required {required}"
            )
