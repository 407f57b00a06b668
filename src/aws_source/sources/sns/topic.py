"""sns-topic source. Topics are identified by their ARN."""

from typing import Any, Dict, List, Optional
import logging

from botocore.exceptions import ClientError

from ...sdp import ErrorType, Item, QueryError, QueryMethod, linked
from ..always_get import AlwaysGetSource
from ..limit_bucket import LimitBucket
from ..shared import parse_arn_in_scope, tags_to_dict, to_attributes

logger = logging.getLogger(__name__)

ITEM_TYPE = 'sns-topic'


def topic_get_func(client, scope: str, get_input: Dict[str, Any]) -> Item:
    topic_arn = get_input['TopicArn']
    topic_attributes = client.get_topic_attributes(TopicArn=topic_arn).get('Attributes')
    if not topic_attributes:
        raise QueryError(ErrorType.NOTFOUND, "get topic attributes response was empty", scope=scope)

    item = Item(
        type=ITEM_TYPE,
        unique_attribute='topicArn',
        scope=scope,
        attributes=to_attributes(topic_attributes),
    )

    try:
        item.tags = tags_to_dict(client.list_tags_for_resource(ResourceArn=topic_arn).get('Tags'))
    except ClientError as e:
        logger.warning(f"Could not get tags for topic {topic_arn}: {e}")

    if topic_attributes.get('KmsMasterKeyId'):
        # Changing the key affects the topic
        item.linked_item_queries.append(linked(
            'kms-key', QueryMethod.GET, topic_attributes['KmsMasterKeyId'], scope, in_=True, out=False,
        ))

    return item


def topic_list_output_mapper(output: Dict[str, Any], list_input: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [{'TopicArn': t['TopicArn']} for t in output.get('Topics', []) if t.get('TopicArn')]


def topic_search_input(scope: str, query: str) -> Dict[str, str]:
    # The ARN is the topic's ID
    parse_arn_in_scope(query, scope)
    return {'TopicArn': query}


def new_topic_source(client, account_id: str, region: str, limit: Optional[LimitBucket] = None) -> AlwaysGetSource:
    return AlwaysGetSource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        list_operation='list_topics',
        list_output_mapper=topic_list_output_mapper,
        get_func=topic_get_func,
        get_input_mapper=lambda scope, query: {'TopicArn': query},
        search_get_input_mapper=topic_search_input,
    )
