from __future__ import annotations

import argparse
import sys

from loguru import logger

from dust_sweeper.config import AppSettings
from dust_sweeper.db import make_session_factory, record_run
from dust_sweeper.discovery.sources import FileTokenSource, HttpTokenSource, select_dust
from dust_sweeper.events import LogReporter
from dust_sweeper.execution.evm_wallet import EvmWallet
from dust_sweeper.execution.orchestrator import SwapOrchestrator


def prompt_confirm(kind: str, details: dict) -> bool:
    if kind == "approve":
        question = f"Approve {details.get('symbol')} ({details.get('amount')} units) for the router?"
    else:
        question = f"Send bulk swap of {len(details.get('tokens', []))} tokens (minReceive {details.get('min_receive')})?"
    answer = input(f"{question} [y/N] ").strip().lower()
    return answer in ("y", "yes")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Swap dust token balances into the target asset")
    p.add_argument("--tokens-file", help="JSON token snapshot. Defaults to DUST_TOKEN_SOURCE_URL.")
    p.add_argument("--token", action="append", default=[], help="Token address to include (repeatable). Default: all dust.")
    p.add_argument("--estimated-output", type=int, default=None, help="External output estimate in target smallest units")
    p.add_argument("--live", action="store_true", help="Send transactions (overrides DUST_DRY_RUN)")
    p.add_argument("--yes", "-y", action="store_true", help="Do not prompt before signing")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = AppSettings()
    if args.live:
        settings.dry_run = False
    logger.remove()
    logger.add(lambda msg: print(msg, end=""), level=settings.log_level)

    wallet = EvmWallet.create(
        rpc_url=settings.rpc_url,
        chain_id=settings.chain_id,
        private_key=settings.private_key,
        explicit_address=settings.account_address,
        retry_count=settings.rpc_retry_count,
        retry_delay_sec=settings.rpc_retry_delay_sec,
        timeout_sec=settings.rpc_timeout_sec,
        max_fee_gwei=settings.max_fee_gwei,
        max_priority_fee_gwei=settings.max_priority_fee_gwei,
    )

    if args.tokens_file:
        snapshot = FileTokenSource(args.tokens_file).tokens()
    elif settings.token_source_url and wallet.address:
        snapshot = HttpTokenSource(settings.token_source_url).tokens(wallet.address)
    else:
        print("No token source: pass --tokens-file or set DUST_TOKEN_SOURCE_URL", file=sys.stderr)
        return 1

    dust = select_dust(
        snapshot,
        max_usd=settings.dust_threshold_usd,
        excluded=settings.excluded_tokens(),
        target_token=settings.target_token_for(settings.chain_id),
    )
    selection = args.token or [t.address for t in dust]
    if not selection:
        logger.info("No dust tokens to sweep")
        return 0

    orchestrator = SwapOrchestrator(
        settings,
        wallet,
        sink=LogReporter(),
        confirm=None if args.yes else prompt_confirm,
    )
    run = orchestrator.run(selection, snapshot, estimated_output=args.estimated_output)

    try:
        record_run(make_session_factory(settings.database_url), run)
    except Exception as e:
        logger.warning("Could not record run {}: {}", run.run_id, e)

    if run.tx_hash:
        print(f"Swap submitted: {run.tx_hash}")
    elif run.error:
        print(f"Swap failed: {run.error}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
