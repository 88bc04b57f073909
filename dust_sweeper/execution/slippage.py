from __future__ import annotations

from loguru import logger

from dust_sweeper.errors import DustTooSmall


def compute_min_receive(aggregate_quote: int, slippage_bps: int) -> int:
    if not 0 < slippage_bps < 10_000:
        raise ValueError(f"slippage_bps out of range: {slippage_bps}")
    if aggregate_quote <= 0:
        raise DustTooSmall("Aggregate quote is zero")
    min_receive = aggregate_quote * (10_000 - slippage_bps) // 10_000
    if min_receive <= 0:
        raise DustTooSmall(
            f"Quote of {aggregate_quote} is too small to apply {slippage_bps} bps slippage protection"
        )
    return min_receive


def clamp_to_estimate(min_receive: int, estimate: int, floor_pct: int = 70, ceiling_pct: int = 90) -> int:
    """Keep ``min_receive`` within [floor_pct, ceiling_pct] percent of an external estimate."""
    if estimate <= 0:
        raise DustTooSmall("Estimated output is zero")
    floor = estimate * floor_pct // 100
    ceiling = estimate * ceiling_pct // 100
    if min_receive < floor:
        logger.warning("minReceive {} below {}% of estimate {}, raising", min_receive, floor_pct, estimate)
        return floor
    if min_receive > ceiling:
        logger.warning("minReceive {} above {}% of estimate {}, lowering", min_receive, ceiling_pct, estimate)
        return ceiling
    return min_receive


class MinReceiveCalculator:
    def __init__(self, slippage_bps: int = 1000, floor_pct: int = 70, ceiling_pct: int = 90):
        self.slippage_bps = slippage_bps
        self.floor_pct = floor_pct
        self.ceiling_pct = ceiling_pct

    def calculate(self, aggregate_quote: int, estimated_output: int | None = None) -> int:
        base = compute_min_receive(aggregate_quote, self.slippage_bps)
        if estimated_output is None:
            return base
        min_receive = clamp_to_estimate(base, estimated_output, self.floor_pct, self.ceiling_pct)
        # the router's aggregate quote stays authoritative: never ask for more than it can pay
        cap = min(aggregate_quote * self.ceiling_pct // 100, aggregate_quote - 1)
        if min_receive > cap:
            logger.warning(
                "minReceive {} exceeds {} allowed by aggregate quote {}, capping",
                min_receive,
                cap,
                aggregate_quote,
            )
            min_receive = cap
        if min_receive <= 0:
            raise DustTooSmall(f"Estimated output {estimated_output} too small for slippage protection")
        return min_receive
