import logging
from zoneinfo import ZoneInfo

from core.dates import Clock, local_date, utc_now
from data_access.repositories import ReceiptCounter

logger = logging.getLogger(__name__)

RECEIPT_PREFIX = "RCP"

class ReceiptSequencer:
    """
    Issues receipt numbers of the form ``RCP-<year>-<sequence>``.

    The sequence restarts every calendar year of the operating timezone.
    Uniqueness comes from the counter's atomic increment in the store, so a
    number allocated for a write that later fails is simply skipped.
    """

    def __init__(self, counter: ReceiptCounter, timezone: ZoneInfo, clock: Clock = utc_now):
        self.counter = counter
        self.timezone = timezone
        self.clock = clock

    def allocate(self) -> str:
        year = local_date(self.clock(), self.timezone).year
        number = self.counter.next_value(year)
        receipt_number = f"{RECEIPT_PREFIX}-{year}-{number:05d}"
        logger.info(f"Allocated receipt number {receipt_number}")
        return receipt_number
