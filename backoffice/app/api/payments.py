"""Payment processor callbacks."""
import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.api.deps import get_cache, get_session
from backoffice.app.core.database import bounded
from backoffice.app.core.exceptions import ServiceError
from backoffice.app.core.logging import get_logger
from backoffice.app.core.settings import get_settings
from backoffice.app.services.cache import CacheService
from backoffice.app.services.payment import PaymentService

router = APIRouter()
logger = get_logger(__name__)


def _valid_secret(received: Optional[str]) -> bool:
    expected = get_settings().PAYMENT_WEBHOOK_SECRET
    if not expected or not received:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
    x_webhook_secret: Optional[str] = Header(None, alias="X-Webhook-Secret"),
):
    """
    Payment processor webhook.

    Returns HTTP 200 for every notification, including rejected and failed
    ones (they are logged), so the processor does not retry endlessly. An
    authenticated body that is not a JSON object is the one exception: 400.
    """
    if not _valid_secret(x_webhook_secret):
        logger.warning("Webhook with invalid secret ignored")
        return {"status": "ok"}

    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON")

    logger.info("Payment webhook received", webhook_event=body.get("event"))

    try:
        order = await bounded(PaymentService(session).handle_webhook(body))
        await bounded(session.commit())
    except ServiceError as exc:
        await session.rollback()
        logger.error("Webhook processing failed", error=exc.message, error_code=exc.status_code)
        return {"status": "ok"}

    if order is not None:
        await cache.invalidate_dashboard()
    return {"status": "ok"}
