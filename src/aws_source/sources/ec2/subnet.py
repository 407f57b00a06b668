"""ec2-subnet source."""

from typing import Any, Dict, List, Optional

from ...sdp import Item, QueryMethod, linked
from ..describe import DescribeOnlySource
from ..limit_bucket import LimitBucket
from ..shared import tags_to_dict, to_attributes

ITEM_TYPE = 'ec2-subnet'


def subnet_input_mapper_get(scope: str, query: str) -> Dict[str, Any]:
    return {'SubnetIds': [query]}


def subnet_output_mapper(scope: str, output: Dict[str, Any]) -> List[Item]:
    items = []

    for subnet in output.get('Subnets', []):
        item = Item(
            type=ITEM_TYPE,
            unique_attribute='subnetId',
            scope=scope,
            attributes=to_attributes(subnet, exclude=['tags']),
            tags=tags_to_dict(subnet.get('Tags')),
        )

        if subnet.get('AvailabilityZone'):
            # Zones don't change
            item.linked_item_queries.append(linked(
                'ec2-availability-zone', QueryMethod.GET, subnet['AvailabilityZone'], scope,
                in_=False, out=False,
            ))

        if subnet.get('VpcId'):
            # A broken VPC breaks the subnet
            item.linked_item_queries.append(linked(
                'ec2-vpc', QueryMethod.GET, subnet['VpcId'], scope, in_=True, out=False,
            ))

        items.append(item)

    return items


def new_subnet_source(client, account_id: str, region: str, limit: Optional[LimitBucket] = None) -> DescribeOnlySource:
    return DescribeOnlySource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        describe_func=lambda c, params: c.describe_subnets(**params),
        input_mapper_get=subnet_input_mapper_get,
        output_mapper=subnet_output_mapper,
        paginator='describe_subnets',
    )
