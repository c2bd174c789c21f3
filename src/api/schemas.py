from pydantic import BaseModel

class WebhookAcknowledgement(BaseModel):
    received: bool
    ignored: bool | None = None
    skipped: str | None = None

class CampaignTotalResponse(BaseModel):
    campaign_id: str
    current_amount: int

class HealthResponse(BaseModel):
    status: str
