"""End-to-end sweep pipeline.

preflight -> plan -> allowance -> approval -> quote -> min_receive -> gas -> swap

Stages run strictly in order on the caller's thread. Any stage failure ends
the run; nothing is retried. Approvals that were mined before a later stage
failed stay on-chain and show up as sufficient allowance on the next run.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Sequence

from loguru import logger
from web3 import Web3

from dust_sweeper.chains.evm import verify_chain, verify_router
from dust_sweeper.config import AppSettings
from dust_sweeper.errors import (
    ApprovalRejectedByUser,
    SwapError,
    SwapRejectedByUser,
    TargetTokenSelected,
    WalletNotConnected,
)
from dust_sweeper.events import EventSink, LogReporter, StageEvent
from dust_sweeper.execution.allowance import AllowanceChecker
from dust_sweeper.execution.approvals import ApprovalSequencer
from dust_sweeper.execution.gas import GasEstimator
from dust_sweeper.execution.plan import SwapPlanBuilder
from dust_sweeper.execution.quotes import QuoteValidator
from dust_sweeper.execution.slippage import MinReceiveCalculator
from dust_sweeper.execution.swap import SwapExecutor
from dust_sweeper.models import (
    ApprovalState,
    PipelineRun,
    RunStatus,
    Stage,
    SwapParameters,
    SwapPlanEntry,
    TokenRecord,
    same_address,
)


class SwapOrchestrator:
    def __init__(
        self,
        settings: AppSettings,
        wallet,
        sink: EventSink | None = None,
        confirm: Callable[[str, dict[str, Any]], bool] | None = None,
    ):
        self.settings = settings
        self.wallet = wallet
        self.sink = sink or LogReporter()
        self.confirm = confirm

        # resolved per run from the chain the wallet is actually connected to
        self.router_address: str | None = None
        self.target_token: str | None = None

        self.builder = SwapPlanBuilder(settings.guard_divisor, settings.guard_min_wei)
        self.min_receive = MinReceiveCalculator(
            settings.slippage_bps, settings.min_receive_floor_pct, settings.min_receive_ceiling_pct
        )

    # --- events -----------------------------------------------------------

    def _emit(self, run: PipelineRun, stage: Stage, status: str, payload: dict | None = None) -> None:
        self.sink(StageEvent(run_id=run.run_id, stage=stage, status=status, payload=payload or {}))

    @contextmanager
    def _stage(self, run: PipelineRun, stage: Stage) -> Iterator[dict[str, Any]]:
        run.stage = stage
        self._emit(run, stage, "started")
        out: dict[str, Any] = {}
        try:
            yield out
        except SwapError as e:
            self._emit(run, stage, "failed", {"error": e.message, "type": type(e).__name__})
            raise
        self._emit(run, stage, out.pop("_status", "completed"), out)

    def _finish(self, run: PipelineRun, status: RunStatus, error: SwapError | None = None) -> PipelineRun:
        run.status = status
        run.finished_at = datetime.now(timezone.utc)
        if error is not None:
            run.error = error.message
            run.error_type = type(error).__name__
        logger.info("Run {} finished: {} {}", run.run_id, status.value, run.error or run.tx_hash or "")
        return run

    # --- pipeline ---------------------------------------------------------

    def run(
        self,
        selection: Sequence[str],
        snapshot: Sequence[TokenRecord],
        estimated_output: int | None = None,
    ) -> PipelineRun:
        """Run one sweep attempt. Each call starts from a fresh plan."""
        run = PipelineRun(selection=tuple(selection), account=self.wallet.address)
        try:
            self._preflight(run)
            self._build_plan(run, snapshot)
            self._read_allowances(run)
            sequencer = self._sequencer(run)
            self._approve(run, sequencer)
            self._quote(run)
            self._compute_params(run, estimated_output)
            self._estimate_gas(run)
            self._submit(run)
        except (ApprovalRejectedByUser, SwapRejectedByUser) as e:
            return self._finish(run, RunStatus.REJECTED, e)
        except SwapError as e:
            return self._finish(run, RunStatus.FAILED, e)
        except Exception:
            run.error = "An error occurred during the swap"
            self._finish(run, RunStatus.FAILED)
            raise
        return self._finish(run, RunStatus.DRY_RUN if self.settings.dry_run else RunStatus.SUBMITTED)

    def _preflight(self, run: PipelineRun) -> None:
        with self._stage(run, Stage.PREFLIGHT) as out:
            if not run.account:
                raise WalletNotConnected("Wallet not connected. Configure an account first.")
            run.chain_id = verify_chain(self.wallet, self.settings.accepted_chain_ids())
            router = self.settings.router_for(run.chain_id)
            self.router_address = Web3.to_checksum_address(router) if router else None
            self.target_token = self.settings.target_token_for(run.chain_id)
            verify_router(self.wallet, run.chain_id, self.router_address)
            out.update(chain_id=run.chain_id, router=self.router_address)

    def _build_plan(self, run: PipelineRun, snapshot: Sequence[TokenRecord]) -> None:
        with self._stage(run, Stage.PLAN) as out:
            plan = self.builder.build(run.selection, snapshot)
            if self.target_token and any(same_address(a, self.target_token) for a in plan.addresses):
                raise TargetTokenSelected(
                    "Cannot swap the target token into itself. Please deselect it."
                )
            self.builder.verify_plan(run.selection, plan)
            run.plan = plan
            for entry in plan.entries:
                run.set_approval_state(entry.address, ApprovalState.PENDING)
            out.update(tokens=len(plan), addresses=plan.addresses, amounts=plan.amounts)

    def _read_allowances(self, run: PipelineRun) -> None:
        checker = AllowanceChecker(self.wallet, self.router_address)
        with self._stage(run, Stage.ALLOWANCE) as out:
            for entry in run.plan.entries:
                run.allowances[entry.address.lower()] = checker.allowance(entry.address, run.account)
            out.update(allowances=dict(run.allowances))

    def _sequencer(self, run: PipelineRun) -> ApprovalSequencer:
        def on_transition(entry: SwapPlanEntry, state: ApprovalState, payload: dict[str, Any]) -> None:
            self._emit(
                run,
                Stage.APPROVAL,
                state.value,
                {"token": entry.address, "symbol": entry.token.symbol, **payload},
            )

        return ApprovalSequencer(
            self.wallet,
            self.router_address,
            AllowanceChecker(self.wallet, self.router_address),
            buffer_bps=self.settings.approval_buffer_bps,
            receipt_timeout_sec=self.settings.approval_receipt_timeout_sec,
            confirm=self.confirm,
            listener=on_transition,
        )

    def _approve(self, run: PipelineRun, sequencer: ApprovalSequencer) -> None:
        with self._stage(run, Stage.APPROVAL) as out:
            pending = sequencer.classify(run, run.plan, run.allowances)
            out["needed"] = [e.token.symbol for e in pending]
            if not pending:
                out["_status"] = "skipped"
                return
            if self.settings.dry_run:
                logger.info("Dry run: {} approval(s) not sent", len(pending))
                out["_status"] = "skipped"
                return
            sequencer.run(run, run.plan)

    def _quote(self, run: PipelineRun) -> None:
        with self._stage(run, Stage.QUOTE) as out:
            run.quote = QuoteValidator(self.wallet, self.router_address).quote(run.plan)
            out.update(
                total=run.quote.total,
                per_token=list(run.quote.per_token),
                breakdown=run.quote.breakdown(),
            )

    def _compute_params(self, run: PipelineRun, estimated_output: int | None) -> None:
        with self._stage(run, Stage.MIN_RECEIVE) as out:
            min_receive = self.min_receive.calculate(run.quote.total, estimated_output)
            plan = run.plan
            run.params = SwapParameters(
                addresses=tuple(plan.addresses),
                amounts=tuple(plan.amounts),
                min_receive=min_receive,
            )
            # last alignment check before anything is signed
            self.builder.verify_alignment(
                run.selection, plan.tokens, run.params.addresses, run.params.amounts
            )
            out.update(min_receive=min_receive, slippage_bps=self.settings.slippage_bps)

    def _approvals_outstanding(self, run: PipelineRun) -> bool:
        return any(
            s not in (ApprovalState.SUFFICIENT, ApprovalState.APPROVED) for s in run.approvals.values()
        )

    def _estimate_gas(self, run: PipelineRun) -> None:
        with self._stage(run, Stage.GAS) as out:
            if self.settings.dry_run and self._approvals_outstanding(run):
                # would revert on allowance; nothing useful to learn
                out["_status"] = "skipped"
                return
            run.gas_estimate = GasEstimator(self.wallet, self.router_address).estimate(
                run.params, run.account
            )
            out["gas"] = run.gas_estimate

    def _submit(self, run: PipelineRun) -> None:
        with self._stage(run, Stage.SWAP) as out:
            if self.settings.dry_run:
                out["_status"] = "skipped"
                return
            executor = SwapExecutor(
                self.wallet,
                self.router_address,
                gas_limit_buffer_bps=self.settings.gas_limit_buffer_bps,
                confirm=self.confirm,
            )
            run.tx_hash = executor.execute(run.params, run.account, run.chain_id, run.gas_estimate)
            out["tx_hash"] = run.tx_hash
