#!/usr/bin/env python3
"""Placeholder APY for protocols without a live source."""
import random

# (low, high) APY percentage per pool type
APY_RANGES = {
    'stablecoin': (3.0, 6.0),
    'lending': (2.0, 8.0),
    'dex': (5.0, 20.0),
    'staking': (3.0, 5.0),
    'yield_aggregator': (4.0, 12.0),
}


def fetch_simulated_apy(protocol, rng=random) -> float:
    low, high = APY_RANGES.get(protocol.pool_type, (3.0, 6.0))
    return round(rng.uniform(low, high), 2)
