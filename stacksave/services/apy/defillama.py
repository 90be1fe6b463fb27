#!/usr/bin/env python3
"""Best-effort APY from the DefiLlama yields API."""
import logging

import requests

from stacksave.config import DEFILLAMA_YIELDS_API, APY_FETCH_TIMEOUT

logger = logging.getLogger("stacksave.apy")


def fetch_defillama_apy(protocol, timeout: float = APY_FETCH_TIMEOUT) -> float:
    """
    Highest-TVL pool APY for a protocol/symbol/chain.

    Raises on any HTTP or lookup failure; the cache decides what to serve
    instead.
    """
    response = requests.get(DEFILLAMA_YIELDS_API, timeout=timeout)
    response.raise_for_status()

    data = response.json()
    pools = data.get('data', []) if isinstance(data, dict) else data

    matches = [
        p for p in pools
        if p.get('project') == protocol.llama_project
        and p.get('chain') == protocol.llama_chain
        and (p.get('symbol') or '').upper() == protocol.llama_symbol
    ]
    if not matches:
        raise LookupError(f"No DefiLlama pool for {protocol.protocol_id}")

    best = max(matches, key=lambda p: float(p.get('tvlUsd', 0) or 0))
    apy = float(best.get('apy', 0) or 0)
    if apy == 0:
        apy = float(best.get('apyBase', 0) or 0) + float(best.get('apyReward', 0) or 0)

    logger.debug(f"[APY] DefiLlama {protocol.protocol_id}: {apy:.4f}%")
    return apy
