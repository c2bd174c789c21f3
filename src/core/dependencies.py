import boto3
from functools import lru_cache

from core.config import get_settings
from data_access.dynamodb import (
    DynamoCampaignRepository,
    DynamoDonationRepository,
    DynamoReceiptCounter,
    DynamoSubscriptionRepository,
    DynamoWebhookEventLog,
)
from services.campaign_service import CampaignAggregator
from services.donation_service import DonationLedgerWriter
from services.event_router import build_router
from services.gateway_client import StripeGateway
from services.notification_service import NotificationPublisher, NotificationService
from services.receipt_service import ReceiptSequencer
from services.subscription_service import SubscriptionStateMachine
from services.webhook_gateway import WebhookGateway


@lru_cache()
def get_boto_session() -> boto3.Session:
    settings = get_settings()
    return boto3.Session(
        region_name=settings.AWS_REGION,
        profile_name=settings.AWS_PROFILE
    )

@lru_cache()
def get_dynamo_table():
    session = get_boto_session()
    dynamo_resource = session.resource('dynamodb')
    return dynamo_resource.Table(get_settings().DYNAMODB_TABLE_NAME)

@lru_cache()
def get_notification_publisher() -> NotificationPublisher:
    sqs_client = get_boto_session().client('sqs')
    return NotificationPublisher(
        sqs_client=sqs_client,
        queue_url=get_settings().NOTIFICATION_QUEUE_URL
    )

@lru_cache()
def get_notification_service() -> NotificationService:
    ses_client = get_boto_session().client('ses')
    return NotificationService(
        client=ses_client,
        from_email=get_settings().SES_FROM_EMAIL
    )

@lru_cache()
def get_campaign_aggregator() -> CampaignAggregator:
    return CampaignAggregator(DynamoCampaignRepository(get_dynamo_table()))

@lru_cache()
def get_webhook_gateway() -> WebhookGateway:
    settings = get_settings()
    table = get_dynamo_table()
    gateway = StripeGateway(api_key=settings.STRIPE_SECRET_KEY)
    notifier = get_notification_publisher()

    subscriptions = SubscriptionStateMachine(
        subscriptions=DynamoSubscriptionRepository(table),
        gateway=gateway,
        timezone=settings.timezone,
        notifier=notifier,
    )
    ledger = DonationLedgerWriter(
        donations=DynamoDonationRepository(table),
        receipts=ReceiptSequencer(DynamoReceiptCounter(table), settings.timezone),
        campaigns=get_campaign_aggregator(),
        subscriptions=subscriptions,
        gateway=gateway,
        timezone=settings.timezone,
        notifier=notifier,
    )

    return WebhookGateway(
        router=build_router(ledger, subscriptions),
        event_log=DynamoWebhookEventLog(table),
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        tolerance=settings.WEBHOOK_TOLERANCE_SECONDS,
    )
