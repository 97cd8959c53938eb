"""
Takeover Service Routes Registry
Defines all API routes exposed by the service.
"""
from typing import Any, Dict, List

SERVICE_ROUTES = [
    # Health and Service Info
    {
        "path": "/health",
        "methods": ["GET"],
        "auth_required": False,
        "description": "Basic health check endpoint"
    },
    {
        "path": "/api/v1/takeovers/info",
        "methods": ["GET"],
        "auth_required": False,
        "description": "Service metadata and routes"
    },
    # Supply metrics
    {
        "path": "/api/v1/takeovers/metrics/preview",
        "methods": ["POST"],
        "auth_required": False,
        "description": "Preview goal, pools and safe ceiling for given supply parameters"
    },
    # Campaigns
    {
        "path": "/api/v1/takeovers",
        "methods": ["GET", "POST"],
        "auth_required": True,
        "description": "List campaigns (GET, ?status=, ?eligible=true) or create a campaign (POST)"
    },
    {
        "path": "/api/v1/takeovers/{address}",
        "methods": ["GET"],
        "auth_required": False,
        "description": "Get campaign with status and goal progress"
    },
    {
        "path": "/api/v1/takeovers/{address}/contributions",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Record a contribution"
    },
    {
        "path": "/api/v1/takeovers/{address}/reconcile",
        "methods": ["GET"],
        "auth_required": True,
        "description": "Audit stored aggregates against contributions"
    },
    # Finalization
    {
        "path": "/api/v1/takeovers/{address}/finalize",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Finalize one campaign"
    },
    {
        "path": "/api/v1/takeovers/finalize-sweep",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Finalize every eligible campaign"
    },
    # Claims
    {
        "path": "/api/v1/claims",
        "methods": ["GET"],
        "auth_required": True,
        "description": "List a contributor's claims with settlement preview"
    },
    {
        "path": "/api/v1/claims/{contribution_id}/settle",
        "methods": ["POST"],
        "auth_required": True,
        "description": "Settle one contribution's refund or reward"
    },
    # Statistics
    {
        "path": "/api/v1/takeovers/statistics",
        "methods": ["GET"],
        "auth_required": False,
        "description": "Aggregate campaign statistics"
    },
]

SERVICE_METADATA = {
    "service_name": "takeover_service",
    "version": "1.0.0",
    "tags": ["v1", "takeover", "settlement"],
    "capabilities": [
        "supply_metrics",
        "contributions",
        "finalization",
        "auto_finalize",
        "claim_settlement",
        "statistics",
    ],
}


def get_routes_summary() -> Dict[str, Any]:
    """Compact route listing for the info endpoint"""
    paths: List[str] = [route["path"] for route in SERVICE_ROUTES]
    return {
        "route_count": len(SERVICE_ROUTES),
        "base_path": "/api/v1/takeovers",
        "routes": paths,
        "public_routes": [route["path"] for route in SERVICE_ROUTES if not route["auth_required"]],
    }
