import logging
from typing import Optional

import boto3
from botocore.exceptions import NoCredentialsError

from eventboard.config import Settings, get_settings

logger = logging.getLogger(__name__)


def get_db_connection(settings: Optional[Settings] = None):
    settings = settings or get_settings()
    try:
        dynamodb = boto3.resource(
            "dynamodb",
            endpoint_url=settings.endpoint_url,
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
        )
        return dynamodb
    except NoCredentialsError:
        logger.error("DynamoDB credentials not available")
        return None
