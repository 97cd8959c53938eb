"""
Mint Service HTTP Client

Provides async HTTP client for the external mint issuance service that
provisions V2 tokens for successfully finalized campaigns.
Implements MintClientProtocol for dependency injection.
"""

import logging
from typing import Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..protocols import MintIssuanceError

logger = logging.getLogger(__name__)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.RequestError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500 or exc.response.status_code == 429
    return False


class MintClient:
    """Async HTTP client for the mint issuance service"""

    def __init__(
        self,
        base_url: str = "http://localhost:8260",
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize MintClient

        Args:
            base_url: Base URL for the mint service
            timeout: Request timeout in seconds
            max_retries: Attempts per call for transient failures
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.max_retries = max(1, max_retries)
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)
        logger.info(f"MintClient initialized with base_url: {self.base_url}")

    async def create_mint(self, authority: str, decimals: int, idempotency_key: str) -> str:
        """
        Provision a new token mint.

        Args:
            authority: Mint authority
            decimals: Token decimals
            idempotency_key: Repeated calls with the same key return the same mint

        Returns:
            Mint address

        Raises:
            MintIssuanceError: Issuance failed after retries or returned no mint
        """
        payload = {"authority": authority, "decimals": decimals, "idempotency_key": idempotency_key}
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                retry=retry_if_exception(_is_transient),
                reraise=True,
            ):
                with attempt:
                    response = await self.client.post(
                        "/api/v1/mints",
                        json=payload,
                        headers={"Idempotency-Key": idempotency_key},
                    )
                    response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error creating mint ({idempotency_key}): {e.response.status_code}")
            raise MintIssuanceError(f"Mint service returned {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error(f"Request error creating mint ({idempotency_key}): {e}")
            raise MintIssuanceError(f"Mint service unreachable: {e}") from e

        mint_address = response.json().get("mint_address")
        if not mint_address:
            raise MintIssuanceError("Mint service response missing mint_address")

        logger.info(f"Mint created for {idempotency_key}: {mint_address}")
        return mint_address

    async def close(self):
        """Close the HTTP client connection"""
        await self.client.aclose()
        logger.info("MintClient connection closed")
