from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def same_address(a: str | None, b: str | None) -> bool:
    return (a or "").lower() == (b or "").lower()


@dataclass(frozen=True)
class TokenRecord:
    """Token balance as reported by the discovery service.

    ``balance`` is the human-readable decimal string (e.g. ``"0.0123"``); it is
    scaled by ``decimals`` when a plan is built.
    """

    address: str
    symbol: str
    decimals: int
    balance: str
    value_usd: float | None = None
    source: str = "unknown"


@dataclass(frozen=True)
class SwapPlanEntry:
    address: str
    amount: int  # smallest unit
    token: TokenRecord


@dataclass(frozen=True)
class SwapPlan:
    entries: tuple[SwapPlanEntry, ...]

    @property
    def addresses(self) -> list[str]:
        return [e.address for e in self.entries]

    @property
    def amounts(self) -> list[int]:
        return [e.amount for e in self.entries]

    @property
    def tokens(self) -> list[TokenRecord]:
        return [e.token for e in self.entries]

    def __len__(self) -> int:
        return len(self.entries)


class ApprovalState(str, Enum):
    SUFFICIENT = "sufficient"
    PENDING = "pending"
    WALLET_CONFIRM_PENDING = "wallet_confirm_pending"
    ON_CHAIN_CONFIRMING = "on_chain_confirming"
    APPROVED = "approved"
    REJECTED = "rejected"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (
            ApprovalState.SUFFICIENT,
            ApprovalState.APPROVED,
            ApprovalState.REJECTED,
            ApprovalState.FAILED,
        )


@dataclass(frozen=True)
class QuoteResult:
    per_token: tuple[int, ...]
    total: int
    bulk_per_token: tuple[int, ...] = ()

    def breakdown(self) -> dict[str, int]:
        # Display only: how the router splits the aggregate output
        return {
            "user": self.total * 80 // 100,
            "liquidity": self.total * 18 // 100,
            "platform_fee": self.total * 2 // 100,
        }


@dataclass(frozen=True)
class SwapParameters:
    addresses: tuple[str, ...]
    amounts: tuple[int, ...]
    min_receive: int


class Stage(str, Enum):
    PREFLIGHT = "preflight"
    PLAN = "plan"
    ALLOWANCE = "allowance"
    APPROVAL = "approval"
    QUOTE = "quote"
    MIN_RECEIVE = "min_receive"
    GAS = "gas"
    SWAP = "swap"


class RunStatus(str, Enum):
    RUNNING = "running"
    SUBMITTED = "submitted"
    DRY_RUN = "dry_run"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class PipelineRun:
    """State of a single user-initiated swap attempt.

    A run is never resumed: retrying means building a new run from a fresh
    token snapshot.
    """

    selection: tuple[str, ...]
    account: str | None = None
    chain_id: int | None = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: RunStatus = RunStatus.RUNNING
    stage: Stage | None = None
    plan: SwapPlan | None = None
    allowances: dict[str, int] = field(default_factory=dict)
    approvals: dict[str, ApprovalState] = field(default_factory=dict)
    approval_tx_hashes: dict[str, str] = field(default_factory=dict)
    quote: QuoteResult | None = None
    params: SwapParameters | None = None
    gas_estimate: int | None = None
    tx_hash: str | None = None
    error: str | None = None
    error_type: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    @property
    def finished(self) -> bool:
        return self.status is not RunStatus.RUNNING

    def approval_state(self, address: str) -> ApprovalState | None:
        return self.approvals.get(address.lower())

    def set_approval_state(self, address: str, state: ApprovalState) -> None:
        self.approvals[address.lower()] = state
