"""
Takeover Service

Token takeover (migration) campaigns for the platform.

Features:
- Conservative supply economics (80/20 reward/liquidity split, 2% safety cushion)
- Contributions with atomic campaign aggregates
- Two-phase, idempotent campaign finalization with V2 mint issuance
- Auto-finalize sweep with per-campaign fault isolation
- Refund / reward claim settlement with proportional scale-down
- Event-driven integration with other services
"""

__version__ = "1.0.0"
