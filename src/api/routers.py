from fastapi import (
    APIRouter,
    Request,
    Header,
    Depends,
    HTTPException
)
from starlette.concurrency import run_in_threadpool
from typing import Optional
import logging

from core.dependencies import get_campaign_aggregator, get_webhook_gateway
from api.schemas import CampaignTotalResponse, HealthResponse, WebhookAcknowledgement
from services.campaign_service import CampaignAggregator
from services.webhook_gateway import WebhookGateway, WebhookProcessingError, WebhookSignatureError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/webhooks/stripe",
    response_model=WebhookAcknowledgement,
    response_model_exclude_none=True
)
async def handle_stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    gateway: WebhookGateway = Depends(get_webhook_gateway)
):
    """
    Receives webhook events from Stripe, verifies them and reconciles them
    into the ledger before acknowledging. Any failure after verification
    returns 500 so that Stripe redelivers the event.
    """
    payload = await request.body()

    try:
        return await run_in_threadpool(gateway.handle, payload, stripe_signature)
    except WebhookSignatureError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except WebhookProcessingError as e:
        logger.error(f"Webhook internal error: {e}")
        raise HTTPException(status_code=500, detail="Webhook processing failed")


@router.get(
    "/campaigns/{campaign_id}/total",
    response_model=CampaignTotalResponse
)
def get_campaign_total(
    campaign_id: str,
    aggregator: CampaignAggregator = Depends(get_campaign_aggregator)
):
    total = aggregator.get_total(campaign_id)
    if total is None:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return CampaignTotalResponse(campaign_id=campaign_id, current_amount=total)


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")
