#!/usr/bin/env python3
"""APY lookups for the supported yield protocols."""
from functools import partial

from stacksave.config import APY_CACHE_TTL_SECONDS, APY_FALLBACK

from .apy_cache import APYCache
from .protocols import Protocol, PROTOCOLS, get_protocol, get_all_protocols_with_apy
from .defillama import fetch_defillama_apy
from .simulated import fetch_simulated_apy

_FAMILIES = {
    'defillama': fetch_defillama_apy,
    'simulated': fetch_simulated_apy,
}

_apy_cache = None


def build_fetchers(protocols=PROTOCOLS):
    return {pid: partial(_FAMILIES[p.family], p) for pid, p in protocols.items()}


def get_apy_cache() -> APYCache:
    """Process-wide cache over the protocol catalogue."""
    global _apy_cache
    if _apy_cache is None:
        _apy_cache = APYCache(
            build_fetchers(),
            ttl_seconds=APY_CACHE_TTL_SECONDS,
            fallback_apy=APY_FALLBACK,
        )
    return _apy_cache


__all__ = [
    'APYCache',
    'Protocol',
    'PROTOCOLS',
    'get_protocol',
    'get_all_protocols_with_apy',
    'fetch_defillama_apy',
    'fetch_simulated_apy',
    'build_fetchers',
    'get_apy_cache',
]
