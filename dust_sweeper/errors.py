"""Failure taxonomy for a sweep run and the revert-data decoder.

Every stage of the pipeline raises a :class:`SwapError` subclass. Raw revert
data never reaches the user: anything coming back from the node goes through
:func:`decode_error` first.
"""

from __future__ import annotations

from typing import Any


class SwapError(Exception):
    # True when a fresh run (rebuilt from current balances) may succeed
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class WalletNotConnected(SwapError):
    pass


class NetworkMismatch(SwapError):
    pass


class RouterNotDeployed(SwapError):
    pass


class TokenNotFound(SwapError):
    pass


class InvalidBalance(SwapError):
    pass


class ArrayConsistencyMismatch(SwapError):
    pass


class InvalidSwapAmount(SwapError):
    pass


class TargetTokenSelected(SwapError):
    pass


class InsufficientAllowance(SwapError):
    """Raised internally when a plan entry needs approval; never terminal."""

    retryable = True


class ApprovalRejectedByUser(SwapError):
    pass


class ApprovalTransactionFailed(SwapError):
    retryable = True


class DustTooSmall(SwapError):
    pass


class QuoteFailed(SwapError):
    retryable = True


class GasEstimationFailed(SwapError):
    retryable = True


class SwapRejectedByUser(SwapError):
    pass


class SwapExecutionReverted(SwapError):
    retryable = True


UNKNOWN_CONTRACT_ERROR = "Unknown contract error"

ERROR_SELECTORS: dict[str, str] = {
    "0xfb8f41b2": "ERC20: insufficient allowance - please approve tokens first",
    "0x4e487b71": "Arithmetic overflow/underflow",
    "0x4d5c4d5c": "Invalid token address",
    "0x8c5be1e5": "ERC20: insufficient allowance",
    "0xa9059cbb": "ERC20: transfer amount exceeds balance",
    "0xe450d38c": "ERC20: insufficient balance",
}

_REJECTION_MARKERS = ("user rejected", "user denied", "rejected the request")
_NO_FUNDS_MARKERS = ("insufficient funds",)


def _error_text(error: Any) -> str:
    if isinstance(error, str):
        return error.lower()
    parts = [str(error)]
    for arg in getattr(error, "args", ()) or ():
        parts.append(str(arg))
    data = getattr(error, "data", None)
    if data is not None:
        parts.append("0x" + bytes(data).hex() if isinstance(data, (bytes, bytearray)) else str(data))
    return " ".join(parts).lower()


def is_user_rejection(error: Any) -> bool:
    text = _error_text(error)
    return any(m in text for m in _REJECTION_MARKERS)


def is_insufficient_funds(error: Any) -> bool:
    text = _error_text(error)
    return any(m in text for m in _NO_FUNDS_MARKERS)


def decode_error(error: Any) -> str:
    """Map an exception or revert string onto a human-readable cause."""
    text = _error_text(error)
    for selector, reason in ERROR_SELECTORS.items():
        if selector in text:
            return reason
    if is_user_rejection(text):
        return "Transaction was rejected by user"
    if is_insufficient_funds(text):
        return "Insufficient native balance for gas fees"
    return UNKNOWN_CONTRACT_ERROR
