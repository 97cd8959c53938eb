"""
Takeover Microservice API

Token takeover campaigns: supply economics, contributions, two-phase
finalization with V2 mint issuance, auto-finalize sweep and claim settlement.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query

from core.config import get_settings
from core.logger import setup_service_logger
from core.nats_client import get_event_bus

from .factory import create_takeover_service
from .finalization import REASON_NOT_YET_ELIGIBLE
from .models import (
    ClaimResult,
    ClaimSettleRequest,
    ClaimStatusFilter,
    ContributionCreateRequest,
    FinalizationResult,
    HealthResponse,
    ReconciliationReport,
    SupplyMetrics,
    SupplyMetricsRequest,
    Takeover,
    TakeoverCreateRequest,
    TakeoverListResponse,
    TakeoverStatistics,
    TakeoverStatusFilter,
)
from .protocols import (
    ContributionLimitExceededError,
    DuplicateContributionError,
    DuplicateTakeoverError,
    ExternalDependencyError,
    InvalidClaimError,
    InvalidParametersError,
    NotEligibleError,
    TakeoverClosedError,
    TakeoverNotFoundError,
)
from .routes_registry import SERVICE_METADATA, get_routes_summary
from .takeover_repository import TakeoverRepository
from .takeover_service import TakeoverService

config = get_settings()

# Configure logging
logger = setup_service_logger("takeover_service", level=config.logging.log_level.upper(), config=config.logging)

# Global variables
takeover_service: Optional[TakeoverService] = None
repository: Optional[TakeoverRepository] = None
event_bus = None  # NATS event bus
scheduler = None  # APScheduler for the auto-finalize sweep
SERVICE_PORT = config.service_port or 8250


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    global takeover_service, repository, event_bus, scheduler

    try:
        # Initialize NATS JetStream event bus
        if config.publish_events and config.infra.nats_enabled:
            try:
                event_bus = await get_event_bus("takeover_service", config=config.infra)
                logger.info("✅ Event bus initialized successfully")
            except Exception as e:
                logger.warning(f"⚠️  Failed to initialize event bus: {e}. Continuing without event publishing.")
                event_bus = None

        takeover_service = create_takeover_service(config=config, event_bus=event_bus)

        # Initialize repository connection and bring legacy rows up to date
        repository = takeover_service.repository
        await repository.initialize()
        migrated = await repository.migrate_legacy_rows()
        if migrated:
            logger.info(f"✅ Migrated {migrated} legacy takeover rows")

        # Start auto-finalize scheduler (APScheduler)
        if config.auto_finalize_interval_seconds > 0:
            try:
                from apscheduler.schedulers.asyncio import AsyncIOScheduler

                scheduler = AsyncIOScheduler()
                scheduler.add_job(
                    takeover_service.sweep,
                    'interval',
                    seconds=config.auto_finalize_interval_seconds,
                    id='takeover_auto_finalize_job',
                    max_instances=1,
                    coalesce=True,
                    replace_existing=True,
                )
                scheduler.start()
                logger.info(
                    f"✅ Auto-finalize scheduler started (every {config.auto_finalize_interval_seconds}s)"
                )
            except Exception as e:
                logger.warning(f"⚠️  Failed to start auto-finalize scheduler: {e}")
                scheduler = None

        logger.info(f"✅ Takeover service started on port {SERVICE_PORT}")
        yield

    except Exception as e:
        logger.error(f"Failed to initialize takeover service: {e}")
        raise
    finally:
        if scheduler:
            try:
                scheduler.shutdown()
                logger.info("✅ Auto-finalize scheduler stopped")
            except Exception as e:
                logger.error(f"❌ Failed to stop scheduler: {e}")

        if takeover_service:
            try:
                await takeover_service.mint_client.close()
            except Exception as e:
                logger.error(f"Error closing mint client: {e}")

        if event_bus:
            try:
                await event_bus.close()
                logger.info("Takeover event bus closed")
            except Exception as e:
                logger.error(f"Error closing event bus: {e}")

        if repository:
            await repository.close()
            logger.info("Takeover service database connections closed")


# Create FastAPI application
app = FastAPI(
    title="Takeover Service",
    description="Token takeover campaigns with conservative reward economics",
    version="1.0.0",
    lifespan=lifespan,
)


# ====================
# Dependency Injection
# ====================


async def get_takeover_service() -> TakeoverService:
    """Get takeover service instance"""
    if not takeover_service:
        raise HTTPException(status_code=503, detail="Takeover service not initialized")
    return takeover_service


def _to_http_error(e: Exception) -> HTTPException:
    """Map a service exception to its HTTP response"""
    if isinstance(e, InvalidParametersError):
        return HTTPException(status_code=422, detail={"message": str(e), "field": e.field})
    if isinstance(e, (TakeoverNotFoundError, InvalidClaimError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ContributionLimitExceededError):
        return HTTPException(
            status_code=409,
            detail={
                "message": str(e),
                "max_safe_total": str(e.max_safe_total) if e.max_safe_total is not None else None,
                "total_contributed": str(e.total_contributed) if e.total_contributed is not None else None,
            },
        )
    if isinstance(e, (DuplicateTakeoverError, DuplicateContributionError, TakeoverClosedError)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, NotEligibleError):
        return HTTPException(status_code=409, detail={"message": str(e), "reason": e.reason})
    if isinstance(e, ExternalDependencyError):
        return HTTPException(status_code=502, detail={"message": str(e), "dependency": e.dependency})
    return HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


def _handle(e: Exception, action: str) -> HTTPException:
    error = _to_http_error(e)
    if error.status_code >= 500:
        logger.error(f"Error {action}: {e}")
    else:
        logger.info(f"Rejected {action}: {e}")
    return error


# ====================
# Health Check and Service Info
# ====================


@app.get("/api/v1/takeovers/health")
@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Basic health check"""
    dependencies = {}

    try:
        if repository and repository.db:
            result = await repository.db.health_check()
            dependencies["database"] = "healthy" if result and result.get('healthy') else "unhealthy"
        else:
            dependencies["database"] = "unhealthy"
    except Exception:
        dependencies["database"] = "unhealthy"

    try:
        if event_bus and hasattr(event_bus, 'is_connected'):
            dependencies["event_bus"] = "healthy" if event_bus.is_connected else "unhealthy"
        else:
            dependencies["event_bus"] = "not_configured"
    except Exception:
        dependencies["event_bus"] = "unhealthy"

    dependencies["scheduler"] = "healthy" if scheduler and scheduler.running else "not_configured"

    status = "healthy" if all(v in ["healthy", "not_configured"] for v in dependencies.values()) else "degraded"

    return HealthResponse(
        status=status,
        service="takeover_service",
        port=SERVICE_PORT,
        version="1.0.0",
        database_connected=dependencies["database"] == "healthy",
        nats_connected=dependencies["event_bus"] == "healthy",
        timestamp=datetime.now(timezone.utc),
    )


@app.get("/health/detailed", response_model=HealthResponse)
async def health_check_detailed():
    """Detailed health check with full dependencies"""
    return await health_check()


@app.get("/api/v1/takeovers/info")
async def service_info():
    """Service metadata and exposed routes"""
    return {**SERVICE_METADATA, **get_routes_summary()}


# ====================
# Supply Metrics
# ====================


@app.post("/api/v1/takeovers/metrics/preview", response_model=SupplyMetrics)
async def preview_metrics(
    request: SupplyMetricsRequest,
    service: TakeoverService = Depends(get_takeover_service)
):
    """Derived goal, pools and safe ceiling for prospective parameters"""
    try:
        return service.calculate_metrics(request)
    except Exception as e:
        raise _handle(e, "previewing supply metrics")


# ====================
# Statistics
# ====================


@app.get("/api/v1/takeovers/statistics", response_model=TakeoverStatistics)
async def get_statistics(service: TakeoverService = Depends(get_takeover_service)):
    """Aggregate campaign statistics"""
    try:
        return await service.get_statistics()
    except Exception as e:
        raise _handle(e, "getting takeover statistics")


# ====================
# Finalization
# ====================


@app.post("/api/v1/takeovers/finalize-sweep")
async def finalize_sweep(service: TakeoverService = Depends(get_takeover_service)):
    """Finalize every eligible campaign; failures are reported per campaign"""
    try:
        result = await service.sweep()
        return result.model_dump_report()
    except Exception as e:
        raise _handle(e, "running finalize sweep")


@app.post("/api/v1/takeovers/{address}/finalize", response_model=FinalizationResult)
async def finalize_takeover(
    address: str,
    service: TakeoverService = Depends(get_takeover_service)
):
    """Finalize one campaign"""
    try:
        return await service.finalize(address)
    except Exception as e:
        raise _handle(e, f"finalizing takeover {address}")


# ====================
# Campaigns
# ====================


@app.post("/api/v1/takeovers", response_model=Takeover, status_code=201)
async def create_takeover(
    request: TakeoverCreateRequest,
    service: TakeoverService = Depends(get_takeover_service)
):
    """Create a campaign"""
    try:
        return await service.create_takeover(request)
    except Exception as e:
        raise _handle(e, "creating takeover")


@app.get("/api/v1/takeovers", response_model=TakeoverListResponse)
async def list_takeovers(
    status: TakeoverStatusFilter = TakeoverStatusFilter.ALL,
    authority: Optional[str] = None,
    eligible: bool = False,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: TakeoverService = Depends(get_takeover_service)
):
    """List campaigns; eligible=true lists campaigns ready to finalize"""
    try:
        if eligible:
            takeovers = await service.list_eligible()
            return TakeoverListResponse(takeovers=takeovers, count=len(takeovers), limit=len(takeovers), offset=0)
        return await service.list_takeovers(status=status, authority=authority, limit=limit, offset=offset)
    except Exception as e:
        raise _handle(e, "listing takeovers")


@app.get("/api/v1/takeovers/{address}", response_model=Takeover)
async def get_takeover(
    address: str,
    service: TakeoverService = Depends(get_takeover_service)
):
    """Get campaign with derived status and goal progress"""
    try:
        return await service.get_takeover(address)
    except Exception as e:
        raise _handle(e, f"getting takeover {address}")


@app.get("/api/v1/takeovers/{address}/reconcile", response_model=ReconciliationReport)
async def reconcile_takeover(
    address: str,
    service: TakeoverService = Depends(get_takeover_service)
):
    """Compare stored aggregates with the sum over contributions"""
    try:
        return await service.reconcile_totals(address)
    except Exception as e:
        raise _handle(e, f"reconciling takeover {address}")


# ====================
# Contributions
# ====================


@app.post("/api/v1/takeovers/{address}/contributions", status_code=201)
async def contribute(
    address: str,
    request: ContributionCreateRequest,
    service: TakeoverService = Depends(get_takeover_service)
):
    """Record a contribution"""
    try:
        result = await service.contribute(address, request)
        return {
            "contribution": result["contribution"].model_dump(mode='json'),
            "takeover": result["takeover"].model_dump(mode='json'),
        }
    except Exception as e:
        raise _handle(e, f"recording contribution to {address}")


# ====================
# Claims
# ====================


@app.post("/api/v1/claims/{contribution_id}/settle", response_model=ClaimResult)
async def settle_claim(
    contribution_id: int,
    request: ClaimSettleRequest,
    service: TakeoverService = Depends(get_takeover_service)
):
    """Settle one contribution's refund or reward"""
    try:
        return await service.settle_claim(contribution_id, request)
    except Exception as e:
        raise _handle(e, f"settling claim {contribution_id}")


@app.get("/api/v1/claims")
async def list_claims(
    contributor: str,
    takeover_address: Optional[str] = None,
    status: ClaimStatusFilter = ClaimStatusFilter.ALL,
    service: TakeoverService = Depends(get_takeover_service)
):
    """List a contributor's claims with settlement preview"""
    try:
        claims = await service.list_user_claims(contributor, takeover_address=takeover_address, status=status)
        return {
            "contributor": contributor,
            "claims": [claim.model_dump(mode='json') for claim in claims],
            "count": len(claims),
        }
    except Exception as e:
        raise _handle(e, f"listing claims for {contributor}")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "microservices.takeover_service.main:app",
        host=config.service_host,
        port=SERVICE_PORT,
        reload=config.debug,
        log_level=config.logging.log_level.lower(),
    )
