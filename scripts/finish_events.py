"""Mark every active event whose end lies in the past as finished.

Meant to run periodically (cron or a scheduled task):

    python -m scripts.finish_events
"""

import logging

from eventboard.config import get_settings
from eventboard.database.dynamodb import get_db_connection
from eventboard.services.event_service import EventService

logger = logging.getLogger(__name__)


def finish_elapsed_events(table_name=None, dynamodb=None, now=None):
    settings = get_settings()
    service = EventService(
        dynamodb or get_db_connection(settings), table_name or settings.table_name
    )
    return service.finish_elapsed_events(now)


if __name__ == "__main__":
    logging.basicConfig(level=get_settings().log_level)
    count = finish_elapsed_events()
    logger.info("Done, %d events finished", count)
