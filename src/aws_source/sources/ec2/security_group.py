"""ec2-security-group source."""

from typing import Any, Dict, List, Optional

from ...sdp import Item, QueryMethod, linked
from ..describe import DescribeOnlySource
from ..limit_bucket import LimitBucket
from ..shared import format_scope, parse_scope, tags_to_dict, to_attributes

ITEM_TYPE = 'ec2-security-group'


def security_group_input_mapper_get(scope: str, query: str) -> Dict[str, Any]:
    return {'GroupIds': [query]}


def _referenced_groups(group: Dict[str, Any], scope: str) -> List:
    """Security groups referenced by ingress or egress rules, possibly in other accounts."""
    _, region = parse_scope(scope)
    queries = []
    seen = set()

    for permission in group.get('IpPermissions', []) + group.get('IpPermissionsEgress', []):
        for pair in permission.get('UserIdGroupPairs', []):
            group_id = pair.get('GroupId')
            if not group_id or group_id == group.get('GroupId') or group_id in seen:
                continue
            seen.add(group_id)

            pair_scope = scope
            if pair.get('UserId'):
                pair_scope = format_scope(pair['UserId'], region)

            queries.append(linked(ITEM_TYPE, QueryMethod.GET, group_id, pair_scope, in_=True, out=False))

    return queries


def security_group_output_mapper(scope: str, output: Dict[str, Any]) -> List[Item]:
    items = []

    for group in output.get('SecurityGroups', []):
        item = Item(
            type=ITEM_TYPE,
            unique_attribute='groupId',
            scope=scope,
            attributes=to_attributes(group, exclude=['tags']),
            tags=tags_to_dict(group.get('Tags')),
        )

        if group.get('VpcId'):
            item.linked_item_queries.append(linked(
                'ec2-vpc', QueryMethod.GET, group['VpcId'], scope, in_=True, out=False,
            ))

        item.linked_item_queries.extend(_referenced_groups(group, scope))
        items.append(item)

    return items


def new_security_group_source(
    client, account_id: str, region: str, limit: Optional[LimitBucket] = None
) -> DescribeOnlySource:
    return DescribeOnlySource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        describe_func=lambda c, params: c.describe_security_groups(**params),
        input_mapper_get=security_group_input_mapper_get,
        output_mapper=security_group_output_mapper,
        paginator='describe_security_groups',
    )
