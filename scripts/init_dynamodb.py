import logging
import time

from botocore.exceptions import ClientError

from eventboard.config import get_settings
from eventboard.database.dynamodb import get_db_connection

logger = logging.getLogger(__name__)

# (index name, partition key attribute, sort key attribute)
GLOBAL_SECONDARY_INDEXES = [
    ("GSI_EventsByDate", "GSI_EventsByDate_PK", "GSI_EventsByDate_SK"),
    ("GSI_EventsByOrganizer", "GSI_EventsByOrganizer_PK", "GSI_EventsByOrganizer_SK"),
    ("GSI_EventsByCategory", "GSI_EventsByCategory_PK", "GSI_EventsByCategory_SK"),
    ("GSI_Categories", "GSI_Categories_PK", "GSI_Categories_SK"),
    ("GSI_Users", "GSI_Users_PK", "GSI_Users_SK"),
]


def create_table_if_not_exists(table_name=None, dynamodb=None):
    """Create DynamoDB table with GSIs if it doesn't exist"""
    table_name = table_name or get_settings().table_name
    dynamodb = dynamodb or get_db_connection()

    try:
        # Check if table exists
        table = dynamodb.Table(table_name)
        table.table_status
        logger.info("Table %s already exists", table_name)
        return table
    except ClientError as e:
        if e.response["Error"]["Code"] != "ResourceNotFoundException":
            raise

    attribute_definitions = [
        {"AttributeName": "PK", "AttributeType": "S"},
        {"AttributeName": "SK", "AttributeType": "S"},
    ]
    global_secondary_indexes = []
    for index_name, pk_attr, sk_attr in GLOBAL_SECONDARY_INDEXES:
        attribute_definitions.append({"AttributeName": pk_attr, "AttributeType": "S"})
        attribute_definitions.append({"AttributeName": sk_attr, "AttributeType": "S"})
        global_secondary_indexes.append(
            {
                "IndexName": index_name,
                "KeySchema": [
                    {"AttributeName": pk_attr, "KeyType": "HASH"},
                    {"AttributeName": sk_attr, "KeyType": "RANGE"},
                ],
                "Projection": {"ProjectionType": "ALL"},
            }
        )

    table = dynamodb.create_table(
        TableName=table_name,
        KeySchema=[
            {"AttributeName": "PK", "KeyType": "HASH"},
            {"AttributeName": "SK", "KeyType": "RANGE"},
        ],
        AttributeDefinitions=attribute_definitions,
        BillingMode="PAY_PER_REQUEST",
        GlobalSecondaryIndexes=global_secondary_indexes,
    )

    # Wait for table to be ready
    logger.info("Creating table %s...", table_name)
    table.wait_until_exists()

    # Wait for GSIs to be active
    while True:
        table.reload()
        gsi_statuses = [gsi["IndexStatus"] for gsi in table.global_secondary_indexes]
        if all(status == "ACTIVE" for status in gsi_statuses):
            break
        time.sleep(1)

    logger.info("Table %s created successfully", table_name)
    return table


def delete_table(table_name=None, dynamodb=None):
    """Delete DynamoDB table"""
    table_name = table_name or get_settings().table_name
    dynamodb = dynamodb or get_db_connection()

    try:
        table = dynamodb.Table(table_name)
        table.delete()
        table.wait_until_not_exists()
        logger.info("Table %s deleted successfully", table_name)
    except ClientError as e:
        if e.response["Error"]["Code"] != "ResourceNotFoundException":
            raise
        logger.info("Table %s does not exist", table_name)


if __name__ == "__main__":
    logging.basicConfig(level=get_settings().log_level)
    create_table_if_not_exists()
