"""
TradeTrack — Optional on-chain receipt check over Ethereum JSON-RPC.

Best effort: any failure is logged and yields None, and the log entry is
written without ``onChainInfo``.
"""

import asyncio
import itertools
import logging
from typing import Any, Optional

import aiohttp

from tradetrack.schemas.logs import OnChainInfo

logger = logging.getLogger(__name__)


class ChainRPCError(Exception):
    pass


class ChainVerifier:
    def __init__(self, rpc_url: str, timeout: int = 10):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._ids = itertools.count(1)

    @property
    def enabled(self) -> bool:
        return bool(self.rpc_url)

    async def _call(self, session: aiohttp.ClientSession, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        async with session.post(self.rpc_url, json=payload) as resp:
            if resp.status != 200:
                body = await resp.text()
                raise ChainRPCError(f"{method} HTTP {resp.status}: {body[:200]}")
            data = await resp.json(content_type=None)
        if data.get("error"):
            raise ChainRPCError(f"{method}: {data['error']}")
        return data.get("result")

    async def verify(self, tx_hash: str) -> Optional[OnChainInfo]:
        """Receipt status, block and confirmation count for ``tx_hash``."""
        if not self.enabled:
            logger.warning("CHAIN_RPC_URL not set — skipping on-chain verification")
            return None

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                receipt = await self._call(session, "eth_getTransactionReceipt", [tx_hash])
                if not receipt:
                    # not mined yet
                    return OnChainInfo(status="unknown")

                status = "success" if receipt.get("status") == "0x1" else "reverted"
                if receipt.get("blockNumber") is None:
                    return OnChainInfo(status=status)

                block_number = int(receipt["blockNumber"], 16)
                latest = int(await self._call(session, "eth_blockNumber", []), 16)
                return OnChainInfo(
                    status=status,
                    blockNumber=block_number,
                    confirmations=latest - block_number + 1,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError, ChainRPCError, ValueError, TypeError) as e:
            logger.warning(f"On-chain verification failed for {tx_hash}: {e}")
            return None
