"""ec2-vpc source."""

from typing import Any, Dict, List, Optional

from ...sdp import Item
from ..describe import DescribeOnlySource
from ..limit_bucket import LimitBucket
from ..shared import tags_to_dict, to_attributes

ITEM_TYPE = 'ec2-vpc'


def vpc_input_mapper_get(scope: str, query: str) -> Dict[str, Any]:
    return {'VpcIds': [query]}


def vpc_output_mapper(scope: str, output: Dict[str, Any]) -> List[Item]:
    items = []

    for vpc in output.get('Vpcs', []):
        items.append(Item(
            type=ITEM_TYPE,
            unique_attribute='vpcId',
            scope=scope,
            attributes=to_attributes(vpc, exclude=['tags']),
            tags=tags_to_dict(vpc.get('Tags')),
        ))

    return items


def new_vpc_source(client, account_id: str, region: str, limit: Optional[LimitBucket] = None) -> DescribeOnlySource:
    return DescribeOnlySource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        describe_func=lambda c, params: c.describe_vpcs(**params),
        input_mapper_get=vpc_input_mapper_get,
        output_mapper=vpc_output_mapper,
        paginator='describe_vpcs',
    )
