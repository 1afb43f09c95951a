from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from config.logging_config import MetricsLogger, get_logger, setup_logging
from services.site_audit_service.audit_service import SiteAuditService
from services.site_audit_service.config import settings
from services.site_audit_service.errors import (
    AggregationError, InvalidTaskStateError, SiteAuditError, TaskNotFoundError, TaskRejectedError,
)
from services.site_audit_service.schemas.report import ReportComparison, SeoAuditReport
from services.site_audit_service.schemas.task import AuditStatus, AuditTask, CreateAuditRequest

logger = get_logger(__name__)

# First match wins; TaskRejectedError is a VendorError and must precede the catch-all.
ERROR_STATUS = (
    (TaskNotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTaskStateError, status.HTTP_409_CONFLICT),
    (TaskRejectedError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (AggregationError, status.HTTP_502_BAD_GATEWAY),
    (SiteAuditError, status.HTTP_502_BAD_GATEWAY),
)


class InstantPageRequest(BaseModel):
    url: str
    options: Dict[str, Any] = Field(default_factory=dict)


class CompareReportsRequest(BaseModel):
    current: SeoAuditReport
    prior: SeoAuditReport


@lru_cache()
def get_audit_service() -> SiteAuditService:
    return SiteAuditService.from_settings(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.service_name)
    logger.info("Starting Site Audit Service")
    yield
    logger.info("Site Audit Service stopped")


app = FastAPI(
    title="Site Audit Service",
    description="Vendor-backed site audits: task lifecycle, report aggregation, historical comparison",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


def status_code_for(exc: SiteAuditError) -> int:
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(SiteAuditError)
async def site_audit_exception_handler(request: Request, exc: SiteAuditError):
    code = status_code_for(exc)
    log = logger.error if code >= 500 else logger.warning
    log(
        f"Site audit error: {exc}",
        extra={
            "status_code": code,
            "error_type": type(exc).__name__,
            "cause": str(exc.__cause__) if exc.__cause__ else None,
            "path": request.url.path,
            "method": request.method,
            "service": settings.service_name
        }
    )

    return JSONResponse(
        status_code=code,
        content={
            "error": {
                "code": code,
                "type": type(exc).__name__,
                "message": str(exc),
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        }
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "service": settings.service_name, "ts": datetime.now(timezone.utc).isoformat()}


@app.get("/metrics")
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/metrics/counters")
async def metric_counters() -> dict:
    return MetricsLogger.get_metrics()


@app.post("/api/v1/audits", response_model=AuditTask, status_code=status.HTTP_201_CREATED)
async def create_audit(payload: CreateAuditRequest, service: SiteAuditService = Depends(get_audit_service)):
    return await service.create_audit_task(payload.target, payload.owner_id, payload.options)


@app.get("/api/v1/audits", response_model=List[AuditTask])
async def list_audits(owner_id: int, service: SiteAuditService = Depends(get_audit_service)):
    return service.list_user_tasks(owner_id)


@app.get("/api/v1/audits/{task_id}", response_model=AuditTask)
async def get_audit(task_id: str, service: SiteAuditService = Depends(get_audit_service)):
    return service.get_task(task_id)


@app.get("/api/v1/audits/{task_id}/status", response_model=AuditStatus)
async def get_audit_status(task_id: str, service: SiteAuditService = Depends(get_audit_service)):
    return await service.get_audit_status(task_id)


@app.post("/api/v1/audits/{task_id}/cancel")
async def cancel_audit(task_id: str, service: SiteAuditService = Depends(get_audit_service)) -> dict:
    acknowledged = await service.cancel_audit_task(task_id)
    return {"task_id": task_id, "cancelled": acknowledged}


@app.delete("/api/v1/audits/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_audit(task_id: str, service: SiteAuditService = Depends(get_audit_service)) -> Response:
    if not service.delete_task(task_id):
        raise TaskNotFoundError(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/api/v1/audits/{task_id}/report", response_model=SeoAuditReport)
async def generate_report(
    task_id: str,
    prior: Optional[SeoAuditReport] = Body(None),
    service: SiteAuditService = Depends(get_audit_service),
):
    return await service.generate_report(task_id, prior)


@app.post("/api/v1/reports/compare", response_model=ReportComparison)
async def compare_reports(payload: CompareReportsRequest, service: SiteAuditService = Depends(get_audit_service)):
    return service.compare_reports(payload.current, payload.prior)


@app.post("/api/v1/audits/cleanup")
async def cleanup_audits(service: SiteAuditService = Depends(get_audit_service)) -> dict:
    return {"removed": service.cleanup_expired_tasks()}


@app.get("/api/v1/audits/{task_id}/duplicate-content")
async def get_duplicate_content(
    task_id: str,
    url: str,
    limit: int = 100,
    offset: int = 0,
    service: SiteAuditService = Depends(get_audit_service),
) -> List[Dict[str, Any]]:
    return await service.get_duplicate_content(task_id, url, limit, offset)


@app.get("/api/v1/audits/{task_id}/raw-html")
async def get_raw_html(task_id: str, url: str, service: SiteAuditService = Depends(get_audit_service)) -> Dict[str, Any]:
    return await service.get_raw_html(task_id, url)


@app.get("/api/v1/vendor/tasks-ready")
async def get_ready_vendor_tasks(service: SiteAuditService = Depends(get_audit_service)) -> List[Dict[str, Any]]:
    return await service.get_ready_vendor_tasks()


@app.post("/api/v1/pages/instant")
async def instant_page_audit(payload: InstantPageRequest, service: SiteAuditService = Depends(get_audit_service)) -> Dict[str, Any]:
    return await service.get_instant_page_audit(payload.url, payload.options)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("services.site_audit_service.main:app", host="0.0.0.0", port=8000, reload=False)
