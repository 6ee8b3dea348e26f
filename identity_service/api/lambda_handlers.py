"""
AWS Lambda entry points (API Gateway proxy events).

Each handler takes the raw event, runs one IdentityService operation and
returns {"statusCode", "body"}. Operations that produce a report return it
alongside the message as a JSON body.
"""

import json
import threading
from typing import Any, Callable, Dict, Optional

from util.logging import logger

from ..core.errors import IdentityServiceError
from ..core.service import HEALTH_MESSAGE, IdentityService, InvocationResult, create_service
from .schemas import InvocationRequest

_service: Optional[IdentityService] = None
_service_lock = threading.Lock()


def _get_service() -> IdentityService:
    global _service
    with _service_lock:
        if _service is None:
            _service = create_service()
        return _service


def parse_request(event: Optional[Dict[str, Any]]) -> InvocationRequest:
    """Extract {userId, sessionId} from the event body. Unparseable bodies yield an empty request."""
    raw = (event or {}).get("body") or "{}"
    if isinstance(raw, dict):
        payload = raw
    else:
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("Lambda event body is not JSON; treating as empty")
            payload = {}
    if not isinstance(payload, dict):
        payload = {}
    return InvocationRequest.model_validate(payload)


def to_response(result: InvocationResult) -> Dict[str, Any]:
    if result.report is None:
        body = result.message
    else:
        body = json.dumps({"message": result.message, "report": result.report}, default=str)
    return {"statusCode": result.status_code, "body": body}


def _invoke(operation: Callable[[IdentityService], InvocationResult],
            service: Optional[IdentityService] = None) -> Dict[str, Any]:
    try:
        service = service if service is not None else _get_service()
        return to_response(operation(service))
    except IdentityServiceError as e:
        if e.status_code >= 500:
            logger.log_operation("lambda.invoke", "error", {"error": e.message})
        return {"statusCode": e.status_code, "body": e.message}


def health_handler(event, context):
    # Health does not need the document store
    return to_response(InvocationResult(200, HEALTH_MESSAGE))


def profile_handler(event, context, service: Optional[IdentityService] = None):
    request = parse_request(event)
    return _invoke(lambda s: s.sync_profile(request.user_id, request.session_id), service)


def profiles_handler(event, context, service: Optional[IdentityService] = None):
    return _invoke(lambda s: s.sync_all_profiles(), service)


def verify_handler(event, context, service: Optional[IdentityService] = None):
    request = parse_request(event)
    return _invoke(lambda s: s.verify_user(request.user_id), service)


def health_check_handler(event, context, service: Optional[IdentityService] = None):
    return _invoke(lambda s: s.check_all_health(), service)
