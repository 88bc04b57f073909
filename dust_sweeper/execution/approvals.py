from __future__ import annotations

from typing import Any, Callable

from loguru import logger
from web3 import Web3

from dust_sweeper.errors import (
    ApprovalRejectedByUser,
    ApprovalTransactionFailed,
    InsufficientAllowance,
    decode_error,
    is_user_rejection,
)
from dust_sweeper.execution.allowance import AllowanceChecker
from dust_sweeper.models import ApprovalState, PipelineRun, SwapPlan, SwapPlanEntry

ConfirmFn = Callable[[str, dict[str, Any]], bool]
ApprovalListener = Callable[[SwapPlanEntry, ApprovalState, dict[str, Any]], None]


def buffered_amount(required: int, buffer_bps: int = 10) -> int:
    # integer math only; floats lose precision on 18-decimal amounts
    return required * (10_000 + buffer_bps) // 10_000


class ApprovalSequencer:
    """Brings every plan entry's router allowance up to its spend amount.

    Approvals go out one token at a time. Sending them concurrently from one
    key races on the nonce and lets confirmations land out of order.
    """

    def __init__(
        self,
        wallet,
        router_address: str,
        checker: AllowanceChecker,
        buffer_bps: int = 10,
        receipt_timeout_sec: float = 120,
        confirm: ConfirmFn | None = None,
        listener: ApprovalListener | None = None,
    ):
        self.wallet = wallet
        self.router_address = router_address
        self.checker = checker
        self.buffer_bps = buffer_bps
        self.receipt_timeout_sec = receipt_timeout_sec
        self.confirm = confirm
        self.listener = listener

    def _transition(self, run: PipelineRun, entry: SwapPlanEntry, state: ApprovalState, **payload) -> None:
        run.set_approval_state(entry.address, state)
        if self.listener is not None:
            self.listener(entry, state, payload)

    def classify(self, run: PipelineRun, plan: SwapPlan, allowances: dict[str, int]) -> list[SwapPlanEntry]:
        """Mark each entry Sufficient or Pending; return the ones needing approval."""
        pending: list[SwapPlanEntry] = []
        for entry in plan.entries:
            if run.approval_state(entry.address) in (ApprovalState.SUFFICIENT, ApprovalState.APPROVED):
                continue
            current = allowances.get(entry.address.lower(), 0)
            try:
                AllowanceChecker.require(current, entry.amount, entry.token.symbol)
            except InsufficientAllowance as e:
                logger.info(e.message)
                self._transition(
                    run, entry, ApprovalState.PENDING, allowance=current, required=entry.amount
                )
                pending.append(entry)
                continue
            self._transition(run, entry, ApprovalState.SUFFICIENT, allowance=current)
        return pending

    def run(self, run: PipelineRun, plan: SwapPlan) -> None:
        for entry in plan.entries:
            state = run.approval_state(entry.address)
            # never re-approve a token that is already covered
            if state in (ApprovalState.SUFFICIENT, ApprovalState.APPROVED):
                continue
            if state is not ApprovalState.PENDING:
                continue
            self.approve(run, entry)

    def approve(self, run: PipelineRun, entry: SwapPlanEntry) -> str:
        owner = run.account
        symbol = entry.token.symbol
        amount = buffered_amount(entry.amount, self.buffer_bps)
        logger.info(
            "Approving {} ({}) for {} units (required {})", symbol, entry.address, amount, entry.amount
        )
        try:
            tx = (
                self.wallet.erc20(entry.address)
                .functions.approve(Web3.to_checksum_address(self.router_address), amount)
                .build_transaction({"from": owner})
            )
        except Exception as e:
            self._transition(run, entry, ApprovalState.FAILED, reason=decode_error(e))
            raise ApprovalTransactionFailed(f"Failed to approve {symbol}: {decode_error(e)}") from e

        self._transition(run, entry, ApprovalState.WALLET_CONFIRM_PENDING, amount=amount)
        if self.confirm is not None and not self.confirm(
            "approve", {"token": entry.address, "symbol": symbol, "amount": amount}
        ):
            self._transition(run, entry, ApprovalState.REJECTED)
            raise ApprovalRejectedByUser(f"Approval of {symbol} rejected by user")

        try:
            tx_hash = self.wallet.send_tx(tx)
        except Exception as e:
            if is_user_rejection(e):
                self._transition(run, entry, ApprovalState.REJECTED)
                raise ApprovalRejectedByUser(f"Approval of {symbol} rejected by user") from e
            reason = decode_error(e)
            self._transition(run, entry, ApprovalState.FAILED, reason=reason)
            raise ApprovalTransactionFailed(f"Failed to approve {symbol}: {reason}") from e

        run.approval_tx_hashes[entry.address.lower()] = tx_hash
        self._transition(run, entry, ApprovalState.ON_CHAIN_CONFIRMING, tx_hash=tx_hash)
        try:
            receipt = self.wallet.wait_for_receipt(tx_hash, timeout=self.receipt_timeout_sec)
        except Exception as e:
            self._transition(run, entry, ApprovalState.FAILED, tx_hash=tx_hash, reason=decode_error(e))
            raise ApprovalTransactionFailed(
                f"Approval of {symbol} was not confirmed: {decode_error(e)}"
            ) from e
        if not receipt or receipt.get("status") != 1:
            self._transition(run, entry, ApprovalState.FAILED, tx_hash=tx_hash, reason="reverted")
            raise ApprovalTransactionFailed(f"Approval transaction for {symbol} reverted")

        # a mined approval is enough; the re-read is diagnostic only
        if owner:
            after = self.checker.allowance(entry.address, owner)
            logger.debug("Allowance for {} after approval: {}", symbol, after)
        self._transition(run, entry, ApprovalState.APPROVED, tx_hash=tx_hash, amount=amount)
        return tx_hash

    def revoke(self, token_address: str, owner: str) -> str:
        """Reset the router allowance for ``token_address`` to zero."""
        tx = (
            self.wallet.erc20(token_address)
            .functions.approve(Web3.to_checksum_address(self.router_address), 0)
            .build_transaction({"from": owner})
        )
        tx_hash = self.wallet.send_tx(tx)
        logger.info("Revoked router approval for {}: {}", token_address, tx_hash)
        return tx_hash
