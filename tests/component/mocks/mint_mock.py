"""
Mint Service Mock for Component Testing

Idempotent like the real service: the same idempotency key always maps to
the same mint address.
"""
import asyncio
from typing import Dict, List, Optional, Set

from microservices.takeover_service.protocols import MintIssuanceError


class MockMintClient:
    """Mock implementation of MintClientProtocol"""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls: List[Dict] = []
        self.mints: Dict[str, str] = {}
        self.fail_times = 0
        self.fail_for: Set[str] = set()
        self.error: Optional[Exception] = None
        self.closed = False

    async def create_mint(self, authority: str, decimals: int, idempotency_key: str) -> str:
        self.calls.append({"authority": authority, "decimals": decimals, "idempotency_key": idempotency_key})
        if self.delay:
            await asyncio.sleep(self.delay)

        if self.error is not None:
            raise self.error
        if self.fail_times > 0:
            self.fail_times -= 1
            raise MintIssuanceError("Mint service returned 503")
        if idempotency_key in self.fail_for:
            raise MintIssuanceError(f"Mint service rejected {idempotency_key}")

        if idempotency_key not in self.mints:
            self.mints[idempotency_key] = f"v2mint{len(self.mints) + 1:04d}"
        return self.mints[idempotency_key]

    async def close(self) -> None:
        self.closed = True

    @property
    def issued(self) -> int:
        """Distinct mints provisioned"""
        return len(self.mints)
