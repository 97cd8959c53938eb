"""
Takeover Service Protocols

Defines interfaces for dependency injection and testing.
Following the protocol-based architecture pattern.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


# ====================
# Repository Protocol
# ====================


@runtime_checkable
class TakeoverRepositoryProtocol(Protocol):
    """
    Repository interface for takeover storage.

    Every mutation of a campaign runs in one transaction holding an exclusive
    row lock on that campaign.
    """

    async def create_takeover(self, takeover_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a campaign with its derived economic fields.

        Raises:
            DuplicateTakeoverError: Address already exists
        """
        ...

    async def get_takeover(self, address: str) -> Optional[Dict[str, Any]]:
        """Get campaign by address"""
        ...

    async def list_takeovers(
        self,
        status: Optional[str],
        authority: Optional[str],
        now: int,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """
        List campaigns, newest first.

        Args:
            status: TakeoverStatusFilter value or None for all
            authority: Optional owner filter
            now: Current unix time used by the active/expired filters
        """
        ...

    async def list_eligible_takeovers(self, now: int, lease_cutoff: datetime) -> List[Dict[str, Any]]:
        """
        Campaigns eligible for finalization, oldest first.

        Eligible: not finalized, goal met or deadline passed, and no pending
        finalization started after lease_cutoff.
        """
        ...

    async def record_contribution(
        self,
        address: str,
        contributor: str,
        amount: int,
        transaction_signature: Optional[str],
        now: int,
    ) -> Dict[str, Any]:
        """
        Insert a contribution and increment the campaign aggregates atomically.

        Returns:
            {"contribution": {...}, "takeover": {...}} after the update

        Raises:
            TakeoverNotFoundError, TakeoverClosedError, ContributionLimitExceededError,
            DuplicateContributionError
        """
        ...

    async def begin_finalization(
        self,
        address: str,
        now: int,
        lease_seconds: int,
        token: str,
    ) -> Dict[str, Any]:
        """
        Re-check eligibility under the row lock and mark the campaign pending.

        Returns:
            Campaign row with finalization_status = 'pending' and the token stored

        Raises:
            TakeoverNotFoundError: Unknown address
            NotEligibleError: Finalized, not yet eligible, or lease held
        """
        ...

    async def commit_finalization(
        self,
        address: str,
        token: str,
        is_successful: bool,
        v2_token_mint: Optional[str],
    ) -> Optional[Dict[str, Any]]:
        """
        Write the terminal flags if the caller still holds the pending lease.

        Returns:
            Finalized campaign row, or None if the lease was lost
        """
        ...

    async def abort_finalization(self, address: str, token: str) -> bool:
        """Clear a pending lease held by token; returns True if cleared"""
        ...

    async def get_contribution(self, contribution_id: int) -> Optional[Dict[str, Any]]:
        """Get contribution by id, including its campaign address"""
        ...

    async def list_contributions(self, address: str) -> List[Dict[str, Any]]:
        """All contributions of one campaign, oldest first"""
        ...

    async def settle_claim(
        self,
        contribution_id: int,
        contributor: str,
        takeover_address: str,
        transaction_signature: Optional[str],
    ) -> Dict[str, Any]:
        """
        Settle one contribution and bump the campaign's claim aggregates atomically.

        Returns:
            {"contribution": {...}, "takeover": {...}, "settlement": Settlement}

        Raises:
            InvalidClaimError: Unknown, foreign, already-claimed contribution or
                campaign not finalized
        """
        ...

    async def list_user_contributions(
        self,
        contributor: str,
        takeover_address: Optional[str] = None,
        finalized_only: bool = True,
    ) -> List[Dict[str, Any]]:
        """Contributions of one contributor joined with their campaign fields"""
        ...

    async def get_statistics(self) -> Dict[str, Any]:
        """Aggregate counts across campaigns"""
        ...

    async def compute_aggregates(self, address: str) -> Optional[Dict[str, Any]]:
        """Sum contributions of a campaign for audit"""
        ...


# ====================
# Client Protocols
# ====================


@runtime_checkable
class MintClientProtocol(Protocol):
    """Interface to the external mint issuance service"""

    async def create_mint(self, authority: str, decimals: int, idempotency_key: str) -> str:
        """
        Provision a new V2 token mint.

        Args:
            authority: Mint authority (campaign owner)
            decimals: Token decimals
            idempotency_key: Same key returns the same mint on retry

        Returns:
            Mint address

        Raises:
            MintIssuanceError: Any network or issuance failure
        """
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class EventBusProtocol(Protocol):
    """Event publishing interface"""

    async def publish_event(self, event: Any) -> bool:
        ...


# ====================
# Exceptions
# ====================


class TakeoverServiceError(Exception):
    """Base exception for takeover service errors"""
    pass


class InvalidParametersError(TakeoverServiceError):
    """Raised when economic parameters fall outside policy bounds"""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.field = field
        self.value = value


class TakeoverNotFoundError(TakeoverServiceError):
    """Raised when a campaign does not exist"""
    pass


class DuplicateTakeoverError(TakeoverServiceError):
    """Raised when a campaign address is already registered"""
    pass


class TakeoverClosedError(TakeoverServiceError):
    """Raised when contributing to a finalized, finalizing or expired campaign"""
    pass


class ContributionLimitExceededError(TakeoverServiceError):
    """Raised when a contribution would pass the maximum safe total"""

    def __init__(
        self,
        message: str,
        max_safe_total: Optional[int] = None,
        total_contributed: Optional[int] = None,
    ):
        super().__init__(message)
        self.max_safe_total = max_safe_total
        self.total_contributed = total_contributed


class DuplicateContributionError(TakeoverServiceError):
    """Raised when a transaction signature was already recorded as a contribution"""
    pass


class NotEligibleError(TakeoverServiceError):
    """Raised when finalize is attempted on a campaign that is not eligible"""

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class InvalidClaimError(TakeoverServiceError):
    """Raised when a claim is unknown, foreign, already processed or premature"""
    pass


class ExternalDependencyError(TakeoverServiceError):
    """Raised when mint issuance or storage fails during an operation"""

    def __init__(self, message: str, dependency: Optional[str] = None):
        super().__init__(message)
        self.dependency = dependency


class MintIssuanceError(ExternalDependencyError):
    """Raised when the mint service cannot provision a token"""

    def __init__(self, message: str):
        super().__init__(message, dependency="mint_service")


class SweepPartialFailure(TakeoverServiceError):
    """One or more campaigns failed during a sweep"""

    def __init__(self, message: str, result: Any = None):
        super().__init__(message)
        self.result = result


__all__ = [
    "TakeoverRepositoryProtocol",
    "MintClientProtocol",
    "EventBusProtocol",
    "TakeoverServiceError",
    "InvalidParametersError",
    "TakeoverNotFoundError",
    "DuplicateTakeoverError",
    "TakeoverClosedError",
    "ContributionLimitExceededError",
    "DuplicateContributionError",
    "NotEligibleError",
    "InvalidClaimError",
    "ExternalDependencyError",
    "MintIssuanceError",
    "SweepPartialFailure",
]
