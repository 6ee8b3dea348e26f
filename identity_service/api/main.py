"""
HTTP surface for the identity service.
"""

import threading
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from util.logging import logger

from ..core.config import VERSION, debug_enabled
from ..core.errors import IdentityServiceError
from ..core.service import HEALTH_MESSAGE, IdentityService, InvocationResult, create_service
from .schemas import ErrorResponse, HealthResponse, InvocationRequest, InvocationResponse

_service: Optional[IdentityService] = None
_service_lock = threading.Lock()

ERROR_RESPONSES = {500: {"model": ErrorResponse}}
VERIFY_ERROR_RESPONSES = {
    code: {"model": ErrorResponse} for code in (400, 403, 404, 409, 500, 502)
}


def get_service() -> IdentityService:
    """Lazily build the process-wide IdentityService. Overridden in tests."""
    global _service
    with _service_lock:
        if _service is None:
            _service = create_service()
        return _service


app = FastAPI(
    title="Identity Service",
    version=VERSION,
    description="Profile service health checks, profile reconciliation and chaincode verification",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None
)


@app.exception_handler(IdentityServiceError)
async def identity_service_error_handler(request: Request, exc: IdentityServiceError):
    if exc.status_code >= 500:
        logger.log_operation(f"api{request.url.path}", "error", {"error": exc.message})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(status_code=exc.status_code, message=exc.message).model_dump()
    )


def _respond(result: InvocationResult) -> JSONResponse:
    body = InvocationResponse(status_code=result.status_code, message=result.message, report=result.report)
    return JSONResponse(status_code=result.status_code, content=body.model_dump(mode="json"))


@app.get("/health", response_model=HealthResponse)
def health_endpoint():
    """Service liveness; does not touch the document store."""
    return HealthResponse(status_code=200, message=HEALTH_MESSAGE, version=VERSION)


@app.post("/profile", response_model=InvocationResponse, responses=ERROR_RESPONSES)
def sync_profile_endpoint(request: Optional[InvocationRequest] = None,
                          service: IdentityService = Depends(get_service)):
    request = request if request is not None else InvocationRequest()
    return _respond(service.sync_profile(request.user_id, request.session_id))


@app.post("/profiles", response_model=InvocationResponse, responses=ERROR_RESPONSES)
def sync_all_profiles_endpoint(service: IdentityService = Depends(get_service)):
    return _respond(service.sync_all_profiles())


@app.post("/verify", response_model=InvocationResponse, responses=VERIFY_ERROR_RESPONSES)
def verify_endpoint(request: Optional[InvocationRequest] = None,
                    service: IdentityService = Depends(get_service)):
    request = request if request is not None else InvocationRequest()
    return _respond(service.verify_user(request.user_id))


@app.post("/health-check", response_model=InvocationResponse, responses=ERROR_RESPONSES)
def health_check_endpoint(service: IdentityService = Depends(get_service)):
    return _respond(service.check_all_health())
