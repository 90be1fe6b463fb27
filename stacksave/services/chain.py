#!/usr/bin/env python3
"""
Read-only blockchain façade.

Contract views (StackSave vault, USDC token) are read through the
chain-reader sidecar, which holds the ABIs and answers
POST /call {contract, method, args} with {success, result}. Transaction
receipts come straight from the node over JSON-RPC.

Token amounts come back as raw integer units and are converted to Decimal
with TOKEN_DECIMALS fractional digits. Nothing here falls back: any failure
surfaces as ChainError.
"""
import logging
from decimal import Decimal
from typing import Optional, Dict, Any, List

import requests

from stacksave.config import (
    CHAIN_RPC_URL, CHAIN_SIDECAR_URL, CHAIN_TIMEOUT, STACKSAVE_ADDRESS, USDC_ADDRESS,
    CHAIN_NETWORK, CHAIN_ID, BLOCK_EXPLORER_URL, TOKEN_DECIMALS,
)
from stacksave.errors import ChainError

logger = logging.getLogger("stacksave.chain")


def format_units(raw, decimals: int = TOKEN_DECIMALS) -> Decimal:
    """Raw integer token units -> Decimal amount."""
    try:
        return Decimal(int(raw)).scaleb(-decimals)
    except (TypeError, ValueError) as e:
        raise ChainError(f"Invalid token amount from chain: {raw!r}") from e


def _hex_to_int(value) -> Optional[int]:
    if value is None:
        return None
    return int(value, 16) if isinstance(value, str) else int(value)


def _malformed(source, payload, error) -> ChainError:
    logger.error(f"[Chain] Unexpected {source} result {payload!r}: {error}")
    return ChainError(f"Unexpected result from {source}", reason=str(error))


class ChainReader:
    def __init__(
        self,
        sidecar_url: str = CHAIN_SIDECAR_URL,
        rpc_url: str = CHAIN_RPC_URL,
        timeout: float = CHAIN_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.sidecar_url = sidecar_url.rstrip('/')
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.session = session or requests.Session()

    # ─── Transport ─────────────────────────────────────────────────────────

    def _call(self, contract: str, method: str, *args):
        try:
            response = self.session.post(
                f"{self.sidecar_url}/call",
                json={'contract': contract, 'method': method, 'args': list(args)},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"[Chain] {contract}.{method} failed: {e}")
            raise ChainError(f"Failed to call {contract}.{method}", reason=str(e)) from e

        if not data.get('success'):
            logger.error(f"[Chain] {contract}.{method} rejected: {data.get('error')}")
            raise ChainError(f"Failed to call {contract}.{method}", reason=data.get('error'))
        return data.get('result')

    def _rpc(self, method: str, params: List[Any]):
        if not self.rpc_url:
            raise ChainError("RPC_URL is not configured")
        try:
            response = self.session.post(
                self.rpc_url,
                json={'jsonrpc': '2.0', 'id': 1, 'method': method, 'params': params},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"[Chain] RPC {method} failed: {e}")
            raise ChainError(f"RPC {method} failed", reason=str(e)) from e

        if data.get('error'):
            raise ChainError(f"RPC {method} failed", reason=data['error'].get('message'))
        return data.get('result')

    # ─── Vault Views ───────────────────────────────────────────────────────

    def get_user_goals(self, address: str) -> List[Dict[str, Any]]:
        goals = self._call('stacksave', 'getUserGoals', address) or []
        try:
            return [
                {
                    'goal_id': index,
                    'name': goal['name'],
                    'target_amount': format_units(goal['targetAmount']),
                    'current_amount': format_units(goal['currentAmount']),
                    'created_at': int(goal['createdAt']),
                    'completed': bool(goal['completed']),
                }
                for index, goal in enumerate(goals)
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise _malformed('stacksave.getUserGoals', goals, e) from e

    def get_user_balance(self, address: str) -> Decimal:
        return format_units(self._call('stacksave', 'balances', address))

    def get_total_balance(self, address: str) -> Decimal:
        return format_units(self._call('stacksave', 'getTotalBalance', address))

    def get_pending_interest(self, address: str) -> Decimal:
        return format_units(self._call('stacksave', 'pendingInterest', address))

    def get_user_stats(self, address: str) -> Dict[str, Any]:
        result = self._call('stacksave', 'getUserStats', address)
        try:
            total_deposited, total_earned, streak_days, pending = result
            streak_days = int(streak_days)
        except (TypeError, ValueError) as e:
            raise _malformed('stacksave.getUserStats', result, e) from e
        return {
            'total_deposited': format_units(total_deposited),
            'total_earned': format_units(total_earned),
            'streak_days': streak_days,
            'pending_rewards': format_units(pending),
        }

    def get_total_deposits(self) -> Decimal:
        return format_units(self._call('stacksave', 'totalDeposits'))

    def get_usdc_balance(self, address: str) -> Decimal:
        return format_units(self._call('usdc', 'balanceOf', address))

    # ─── Node ──────────────────────────────────────────────────────────────

    def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Mined receipt, or None when the node does not know the hash."""
        receipt = self._rpc('eth_getTransactionReceipt', [tx_hash])
        if receipt is None:
            return None
        try:
            return {
                'transaction_hash': receipt.get('transactionHash'),
                'block_number': _hex_to_int(receipt.get('blockNumber')),
                'status': 'success' if _hex_to_int(receipt.get('status')) == 1 else 'failed',
                'gas_used': str(_hex_to_int(receipt.get('gasUsed'))),
                'from': receipt.get('from'),
                'to': receipt.get('to'),
            }
        except (AttributeError, TypeError, ValueError) as e:
            raise _malformed('eth_getTransactionReceipt', receipt, e) from e

    # ─── Composites ────────────────────────────────────────────────────────

    def sync_user(self, user_id, wallet_address: str) -> Dict[str, Any]:
        """On-chain snapshot for a user. Read-only; nothing is written locally."""
        goals = self.get_user_goals(wallet_address)
        stats = self.get_user_stats(wallet_address)
        balance = self.get_user_balance(wallet_address)
        logger.info(f"[Chain] Synced user {user_id} ({wallet_address}): {len(goals)} goal(s)")
        return {'goals': goals, 'stats': stats, 'balance': balance}

    def contract_info(self) -> Dict[str, Any]:
        return {
            'stack_save_address': STACKSAVE_ADDRESS,
            'usdc_address': USDC_ADDRESS,
            'network': CHAIN_NETWORK,
            'chain_id': CHAIN_ID,
            'rpc_url': self.rpc_url,
            'block_explorer': BLOCK_EXPLORER_URL,
        }


_chain_reader = None


def get_chain_reader() -> ChainReader:
    global _chain_reader
    if _chain_reader is None:
        _chain_reader = ChainReader()
    return _chain_reader
