"""
Inbound webhooks: payment gateway (Trigger A) and repository push (deployment confirmation).

Nothing is read from or written to the store before the signature is verified.
After verification, unexpected errors are logged and acknowledged with 200 so the
sender does not start a retry storm.
"""
import json
import logging
import re

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from sitepress.api.deps import get_idempotency_store, get_work_queue, raw_body
from sitepress.core.config import settings
from sitepress.db.session import get_db
from sitepress.models.operation import STATUS_COMPLETED, STATUS_PAID
from sitepress.services.generation.errors import SignatureVerificationError
from sitepress.services.idempotency import IdempotencyStore, derive_key
from sitepress.services.operations.service import OperationService
from sitepress.utils.metrics import webhook_rejections_total
from sitepress.utils.signatures import verify_payment_signature, verify_repository_signature
from sitepress.workers.queue import WorkQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

CHECKOUT_COMPLETED = "checkout.session.completed"
# event type -> field of data.object holding the checkout session id
PAYMENT_FAILURE_EVENTS = {
    "charge.failed": "payment_intent",
    "checkout.session.async_payment_failed": "id",
    "checkout.session.expired": "id",
}

_COMMIT_MESSAGE_RE = re.compile(r"^(?:Add|Update) ([a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?) project\b")
_PROJECT_PATH_RE = re.compile(r"^projects/([a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?)/")


def _reject(webhook: str, status_code: int, reason: str, detail: str) -> HTTPException:
    webhook_rejections_total.labels(webhook=webhook, reason=reason).inc()
    logger.warning("webhook_rejected", extra={"reason": reason, "status_code": status_code, "path": webhook})
    return HTTPException(status_code=status_code, detail=detail)


def _parse_json(webhook: str, body: bytes) -> dict:
    try:
        payload = json.loads(body)
    except ValueError:
        raise _reject(webhook, 400, "invalid_json", "Invalid JSON body")
    if not isinstance(payload, dict):
        raise _reject(webhook, 400, "invalid_json", "Invalid JSON body")
    return payload


# ---------- Payment gateway ----------
@router.post("/payment")
def payment_webhook(
    body: bytes = Depends(raw_body),
    stripe_signature: str | None = Header(None),
    db: Session = Depends(get_db),
    idempotency: IdempotencyStore = Depends(get_idempotency_store),
    queue: WorkQueue = Depends(get_work_queue),
) -> dict:
    if not stripe_signature:
        raise _reject("payment", 400, "missing_signature", "Missing signature header")
    try:
        verify_payment_signature(
            body,
            stripe_signature,
            settings.payment_webhook_secret,
            settings.payment_webhook_tolerance_seconds,
        )
    except SignatureVerificationError as e:
        raise _reject("payment", 403, "bad_signature", str(e))
    event = _parse_json("payment", body)

    event_type = event.get("type")
    event_id = event.get("id")
    obj = (event.get("data") or {}).get("object") or {}
    log_extra = {"event_type": event_type, "event_id": event_id}
    try:
        if event_type == CHECKOUT_COMPLETED:
            return _handle_checkout_completed(obj, OperationService(db), idempotency, queue, log_extra)
        if event_type in PAYMENT_FAILURE_EVENTS:
            return _handle_payment_failed(event_type, obj, OperationService(db), log_extra)
        logger.info("payment_webhook_ignored", extra=log_extra)
        return {"received": True}
    except Exception as e:
        logger.exception("payment_webhook_error", extra={**log_extra, "error": str(e)})
        return {"received": True, "success": False}


def _handle_checkout_completed(
    obj: dict,
    operations: OperationService,
    idempotency: IdempotencyStore,
    queue: WorkQueue,
    log_extra: dict,
) -> dict:
    if obj.get("payment_status") != "paid":
        logger.info("checkout_not_paid", extra={**log_extra, "status": obj.get("payment_status")})
        return {"received": True}
    session_id = obj.get("id")
    operation = operations.find_by_payment_session(session_id) if session_id else None
    if operation is None:
        logger.warning("payment_session_unknown", extra={**log_extra, "key": session_id})
        return {"received": True}

    key = derive_key("stripe", CHECKOUT_COMPLETED, session_id)
    if not idempotency.check_and_set(key):
        logger.info("payment_webhook_duplicate", extra={**log_extra, "operation_id": operation.operation_id})
        return {"received": True, "duplicate": True}
    try:
        enqueued = operations.mark_paid(operation.operation_id)
        if not enqueued:
            # An earlier delivery marked it paid but failed to enqueue; the claim dedupes runs
            current = operations.get(operation.operation_id)
            enqueued = current is not None and current.status == STATUS_PAID
            if enqueued:
                logger.info("payment_enqueue_recovered", extra={**log_extra, "operation_id": operation.operation_id})
        if enqueued:
            queue.enqueue(operation.operation_id, source="payment_webhook")
    except Exception:
        idempotency.release(key)
        raise
    idempotency.store_result(key, {"operationId": operation.operation_id, "enqueued": enqueued})
    return {"received": True, "operationId": operation.operation_id, "enqueued": enqueued}


def _handle_payment_failed(event_type: str, obj: dict, operations: OperationService, log_extra: dict) -> dict:
    session_id = obj.get(PAYMENT_FAILURE_EVENTS[event_type])
    operation = operations.find_by_payment_session(session_id) if session_id else None
    if operation is None:
        logger.warning("payment_session_unknown", extra={**log_extra, "key": session_id})
        return {"received": True}
    reason = obj.get("failure_message") or "Payment failed"
    operations.mark_payment_failed(operation.operation_id, reason)
    return {"received": True, "operationId": operation.operation_id}


# ---------- Repository push ----------
def _project_from_push(payload: dict) -> str | None:
    head = payload.get("head_commit") or {}
    match = _COMMIT_MESSAGE_RE.match(head.get("message") or "")
    if match:
        return match.group(1)
    for path in (head.get("added") or []) + (head.get("modified") or []):
        match = _PROJECT_PATH_RE.match(path)
        if match:
            return match.group(1)
    return None


@router.post("/repository")
def repository_webhook(
    body: bytes = Depends(raw_body),
    x_hub_signature_256: str | None = Header(None),
    x_github_event: str | None = Header(None),
    db: Session = Depends(get_db),
) -> dict:
    if not x_hub_signature_256:
        raise _reject("repository", 400, "missing_signature", "Missing signature header")
    if not settings.github_webhook_secret:
        raise _reject("repository", 403, "not_configured", "Webhook secret is not configured")
    try:
        verify_repository_signature(body, x_hub_signature_256, settings.github_webhook_secret)
    except SignatureVerificationError as e:
        raise _reject("repository", 403, "bad_signature", str(e))
    payload = _parse_json("repository", body)

    if x_github_event and x_github_event != "push":
        return {"received": True}
    if payload.get("ref") != f"refs/heads/{settings.github_branch}":
        return {"received": True}

    try:
        project_name = _project_from_push(payload)
        if project_name is None:
            return {"received": True}
        commit_sha = (payload.get("head_commit") or {}).get("id")
        operations = OperationService(db)
        operation = operations.latest_for_project(project_name, status=STATUS_COMPLETED)
        if operation is None:
            logger.info("deployment_without_completed_operation", extra={"project_name": project_name})
            return {"received": True}
        deployed = operations.mark_deployed(operation.operation_id, commit_sha)
        return {"received": True, "operationId": operation.operation_id, "deployed": deployed}
    except Exception as e:
        logger.exception("repository_webhook_error", extra={"error": str(e)})
        return {"received": True, "success": False}
