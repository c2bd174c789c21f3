from concurrent.futures import ThreadPoolExecutor

import pytest

from fakes import InMemoryCampaignRepository
from services.campaign_service import CampaignAggregator


def test_contribution_is_added_to_total(clock):
    campaigns = InMemoryCampaignRepository({"camp_1": 1000})
    aggregator = CampaignAggregator(campaigns, clock=clock)

    assert aggregator.add_contribution("camp_1", 250) is True
    assert campaigns.get("camp_1").current_amount == 1250
    assert campaigns.get("camp_1").updated_at == clock.moment


def test_missing_campaign_is_not_created(clock, caplog):
    campaigns = InMemoryCampaignRepository()
    aggregator = CampaignAggregator(campaigns, clock=clock)

    assert aggregator.add_contribution("camp_missing", 500) is False
    assert campaigns.get("camp_missing") is None
    assert "not found" in caplog.text


def test_negative_contribution_is_rejected():
    aggregator = CampaignAggregator(InMemoryCampaignRepository({"camp_1": 0}))
    with pytest.raises(ValueError):
        aggregator.add_contribution("camp_1", -5)


def test_concurrent_contributions_do_not_lose_updates():
    campaigns = InMemoryCampaignRepository({"camp_1": 700})
    aggregator = CampaignAggregator(campaigns)
    amounts = [100 + i for i in range(100)]

    with ThreadPoolExecutor(max_workers=16) as pool:
        list(pool.map(lambda amount: aggregator.add_contribution("camp_1", amount), amounts))

    assert campaigns.get("camp_1").current_amount == 700 + sum(amounts)


def test_get_total():
    aggregator = CampaignAggregator(InMemoryCampaignRepository({"camp_1": 4200}))

    assert aggregator.get_total("camp_1") == 4200
    assert aggregator.get_total("camp_2") is None
