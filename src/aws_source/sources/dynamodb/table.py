"""dynamodb-table source."""

from typing import Any, Dict, List, Optional
import logging

from botocore.exceptions import ClientError

from ...sdp import ErrorType, Health, Item, QueryError
from ..always_get import AlwaysGetSource
from ..limit_bucket import LimitBucket
from ..shared import arn_search_link, tags_to_dict, to_attributes

logger = logging.getLogger(__name__)

ITEM_TYPE = 'dynamodb-table'

STATUS_HEALTH = {
    'CREATING': Health.PENDING,
    'UPDATING': Health.PENDING,
    'DELETING': Health.WARNING,
    'ACTIVE': Health.OK,
    'INACCESSIBLE_ENCRYPTION_CREDENTIALS': Health.ERROR,
    'ARCHIVING': Health.WARNING,
    'ARCHIVED': Health.WARNING,
}


def _kinesis_stream_arns(client, table_name: str) -> List[str]:
    try:
        response = client.describe_kinesis_streaming_destination(TableName=table_name)
    except ClientError as e:
        logger.debug(f"Could not get streaming destinations for table {table_name}: {e}")
        return []
    return [d['StreamArn'] for d in response.get('KinesisDataStreamDestinations', []) if d.get('StreamArn')]


def _table_tags(client, table_arn: str) -> Dict[str, str]:
    try:
        response = client.list_tags_of_resource(ResourceArn=table_arn)
    except ClientError as e:
        logger.warning(f"Could not get tags for table {table_arn}: {e}")
        return {}
    return tags_to_dict(response.get('Tags'))


def table_get_func(client, scope: str, get_input: Dict[str, Any]) -> Item:
    table = client.describe_table(**get_input).get('Table')
    if not table:
        raise QueryError(ErrorType.NOTFOUND, "returned table is empty", scope=scope)

    item = Item(
        type=ITEM_TYPE,
        unique_attribute='tableName',
        scope=scope,
        attributes=to_attributes(table),
        health=STATUS_HEALTH.get(table.get('TableStatus', '')),
    )

    if table.get('TableArn'):
        item.tags = _table_tags(client, table['TableArn'])

    links = [arn_search_link('kinesis-stream', arn, in_=False, out=True)
             for arn in _kinesis_stream_arns(client, table['TableName'])]

    restore = table.get('RestoreSummary') or {}
    links.append(arn_search_link('backup-recovery-point', restore.get('SourceBackupArn'), in_=False, out=False))
    links.append(arn_search_link(ITEM_TYPE, restore.get('SourceTableArn'), in_=False, out=False))

    sse = table.get('SSEDescription') or {}
    links.append(arn_search_link('kms-key', sse.get('KMSMasterKeyArn')))

    item.linked_item_queries = [link for link in links if link is not None]
    return item


def table_list_output_mapper(output: Dict[str, Any], list_input: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [{'TableName': name} for name in output.get('TableNames', [])]


def new_table_source(client, account_id: str, region: str, limit: Optional[LimitBucket] = None) -> AlwaysGetSource:
    return AlwaysGetSource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        list_operation='list_tables',
        list_output_mapper=table_list_output_mapper,
        get_func=table_get_func,
        get_input_mapper=lambda scope, query: {'TableName': query},
    )
