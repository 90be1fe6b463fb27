#!/usr/bin/env python3
"""
Supported yield protocols.

Each protocol maps to a pool type and a fetch family. The 'defillama' family
reads live APY from the DefiLlama yields API, 'simulated' draws a placeholder
from a range that matches the pool type.
"""
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Any


@dataclass(frozen=True)
class Protocol:
    protocol_id: str
    name: str
    pool_type: str
    family: str                     # 'defillama' | 'simulated'
    llama_project: Optional[str] = None
    llama_symbol: Optional[str] = None
    llama_chain: str = 'Base'

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


PROTOCOLS: Dict[str, Protocol] = {p.protocol_id: p for p in [
    Protocol('aave-v3', 'Aave V3', 'lending', 'defillama', 'aave-v3', 'USDC'),
    Protocol('compound-v3', 'Compound V3', 'lending', 'defillama', 'compound-v3', 'USDC'),
    Protocol('curve-3pool', 'Curve 3pool', 'stablecoin', 'simulated'),
    Protocol('uniswap-v3', 'Uniswap V3', 'dex', 'simulated'),
    Protocol('lido', 'Lido', 'staking', 'defillama', 'lido', 'STETH', 'Ethereum'),
    Protocol('yearn', 'Yearn Finance', 'yield_aggregator', 'simulated'),
]}


def get_protocol(protocol_id: str) -> Optional[Protocol]:
    return PROTOCOLS.get(protocol_id)


def get_all_protocols_with_apy(cache) -> List[Dict[str, Any]]:
    """Catalogue entries with their current (cached) APY."""
    apys = cache.get_batch_apy(list(PROTOCOLS))
    return [
        {
            'protocol_id': p.protocol_id,
            'name': p.name,
            'pool_type': p.pool_type,
            'current_apy': apys[p.protocol_id],
        }
        for p in PROTOCOLS.values()
    ]
