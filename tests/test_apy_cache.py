"""
Pytest tests for the APY cache and its fetchers. No network: DefiLlama is
mocked with a fake requests response.
"""
import random
import threading
import time
from unittest.mock import MagicMock, patch

import requests

from stacksave.services.apy import (
    APYCache, PROTOCOLS, build_fetchers, fetch_defillama_apy, fetch_simulated_apy,
    get_all_protocols_with_apy,
)
from stacksave.services.apy.simulated import APY_RANGES


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CountingFetcher:
    def __init__(self, value=4.2, error=None, delay=0):
        self.value = value
        self.error = error
        self.delay = delay
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        return self.value


# --- Cache behaviour ---


def test_hit_within_ttl_skips_fetch():
    fetcher = CountingFetcher(4.2)
    clock = FakeClock()
    cache = APYCache({'aave-v3': fetcher}, ttl_seconds=600, clock=clock)

    assert cache.get_apy('aave-v3') == 4.2
    clock.now += 599
    assert cache.get_apy('aave-v3') == 4.2
    assert fetcher.calls == 1


def test_stale_entry_is_refetched():
    fetcher = CountingFetcher(4.2)
    clock = FakeClock()
    cache = APYCache({'aave-v3': fetcher}, ttl_seconds=600, clock=clock)

    cache.get_apy('aave-v3')
    clock.now += 600
    fetcher.value = 6.0
    assert cache.get_apy('aave-v3') == 6.0
    assert fetcher.calls == 2


def test_failure_serves_fallback_and_caches_it():
    """A timeout is swallowed; the fallback is cached like a real value."""
    fetcher = CountingFetcher(error=requests.Timeout("slow"))
    cache = APYCache({'aave-v3': fetcher}, fallback_apy=5.0, clock=FakeClock())

    assert cache.get_apy('aave-v3') == 5.0
    assert cache.get_apy('aave-v3') == 5.0
    assert fetcher.calls == 1


def test_unknown_protocol_gets_fallback():
    cache = APYCache({}, fallback_apy=3.3)
    assert cache.get_apy('nope') == 3.3


def test_clear_cache_forces_refetch():
    fetcher = CountingFetcher()
    cache = APYCache({'aave-v3': fetcher, 'lido': CountingFetcher()}, clock=FakeClock())
    cache.get_apy('aave-v3')
    cache.get_apy('lido')

    cache.clear_cache('lido')
    cache.get_apy('aave-v3')
    assert fetcher.calls == 1

    cache.clear_cache()
    cache.get_apy('aave-v3')
    assert fetcher.calls == 2


def test_batch_isolates_failures():
    cache = APYCache({
        'aave-v3': CountingFetcher(4.0),
        'lido': CountingFetcher(error=ValueError("bad payload")),
    }, fallback_apy=5.0)
    assert cache.get_batch_apy(['aave-v3', 'lido', 'mystery']) == {
        'aave-v3': 4.0, 'lido': 5.0, 'mystery': 5.0,
    }
    assert cache.get_batch_apy([]) == {}


def test_concurrent_misses_fetch_once():
    """Callers racing on a cold entry share one fetch."""
    fetcher = CountingFetcher(7.0, delay=0.05)
    cache = APYCache({'yearn': fetcher})
    results = []

    def worker():
        results.append(cache.get_apy('yearn'))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results == [7.0] * 8
    assert fetcher.calls == 1


# --- Fetchers ---


def _llama_response(pools):
    response = MagicMock()
    response.json.return_value = {'status': 'success', 'data': pools}
    response.raise_for_status.return_value = None
    return response


def test_defillama_picks_highest_tvl_pool():
    protocol = PROTOCOLS['aave-v3']
    pools = [
        {'project': 'aave-v3', 'chain': 'Base', 'symbol': 'USDC', 'tvlUsd': 1e6, 'apy': 3.1},
        {'project': 'aave-v3', 'chain': 'Base', 'symbol': 'USDC', 'tvlUsd': 9e7, 'apy': 4.7},
        {'project': 'aave-v3', 'chain': 'Ethereum', 'symbol': 'USDC', 'tvlUsd': 5e9, 'apy': 9.9},
    ]
    with patch('stacksave.services.apy.defillama.requests.get', return_value=_llama_response(pools)) as get:
        assert fetch_defillama_apy(protocol, timeout=3) == 4.7
    assert get.call_args.kwargs['timeout'] == 3


def test_defillama_falls_back_to_base_plus_reward():
    protocol = PROTOCOLS['compound-v3']
    pools = [{'project': 'compound-v3', 'chain': 'Base', 'symbol': 'usdc',
              'tvlUsd': 1e6, 'apy': 0, 'apyBase': 2.5, 'apyReward': 1.0}]
    with patch('stacksave.services.apy.defillama.requests.get', return_value=_llama_response(pools)):
        assert fetch_defillama_apy(protocol) == 3.5


def test_defillama_missing_pool_falls_back_through_cache():
    with patch('stacksave.services.apy.defillama.requests.get', return_value=_llama_response([])):
        cache = APYCache(build_fetchers({'lido': PROTOCOLS['lido']}), fallback_apy=5.0)
        assert cache.get_apy('lido') == 5.0


def test_simulated_apy_stays_in_range():
    rng = random.Random(7)
    for protocol in PROTOCOLS.values():
        low, high = APY_RANGES[protocol.pool_type]
        assert low <= fetch_simulated_apy(protocol, rng=rng) <= high


def test_catalogue_lists_every_protocol():
    cache = APYCache({pid: (lambda: 4.0) for pid in PROTOCOLS})
    catalogue = get_all_protocols_with_apy(cache)
    assert {p['protocol_id'] for p in catalogue} == set(PROTOCOLS)
    assert all(p['current_apy'] == 4.0 for p in catalogue)
