import logging

from core.dates import Clock, utc_now
from data_access.repositories import CampaignRepository

logger = logging.getLogger(__name__)

class CampaignAggregator:
    def __init__(self, campaigns: CampaignRepository, clock: Clock = utc_now):
        self.campaigns = campaigns
        self.clock = clock

    def add_contribution(self, campaign_id: str, amount: int) -> bool:
        """
        Adds a settled amount to the campaign's running total.

        Returns False without writing when the campaign does not exist;
        campaigns are never created as a side effect of a donation.
        Store errors propagate to the caller.
        """
        if amount < 0:
            raise ValueError("Campaign contributions cannot be negative")

        applied = self.campaigns.increment_total(campaign_id, amount, self.clock())
        if not applied:
            logger.warning(f"Campaign {campaign_id} not found; total not updated.")
            return False

        logger.info(
            f"Campaign {campaign_id} total increased by {amount}",
            extra={"context": {"campaign_id": campaign_id, "added_amount": amount}},
        )
        return True

    def get_total(self, campaign_id: str) -> int | None:
        campaign = self.campaigns.get(campaign_id)
        return campaign.current_amount if campaign else None
