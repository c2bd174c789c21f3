import logging
from pydantic import ValidationError

from core.dependencies import get_notification_service
from services.notification_service import NotificationJob

# We need to configure logging here since workers are entry points
from core.logging_config import configure_logging
configure_logging()

logger = logging.getLogger(__name__)

def lambda_handler(event, context):
    logger.info(f"Received {len(event['Records'])} notification jobs.")
    notification_service = get_notification_service()

    for record in event['Records']:
        try:
            job = NotificationJob.model_validate_json(record['body'])
        except ValidationError as e:
            # Malformed jobs would fail forever; drop them
            logger.error(f"Discarding malformed notification {record['messageId']}: {e}")
            continue

        try:
            notification_service.send(job)
        except Exception as e:
            logger.error(f"CRITICAL: Failed to process message {record['messageId']}. Error: {e}")
            raise e

    return {'statusCode': 200}
