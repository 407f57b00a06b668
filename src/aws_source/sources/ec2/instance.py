"""ec2-instance source."""

from typing import Any, Dict, List, Optional

from ...sdp import Health, Item, QueryMethod, linked
from ..describe import DescribeOnlySource
from ..limit_bucket import LimitBucket
from ..shared import tags_to_dict, to_attributes

ITEM_TYPE = 'ec2-instance'

# Scope for items that exist outside AWS, like IPs and DNS names
GLOBAL = 'global'

STATE_HEALTH = {
    'pending': Health.PENDING,
    'running': Health.OK,
    'shutting-down': Health.PENDING,
    'stopping': Health.PENDING,
    'stopped': Health.WARNING,
}


def instance_input_mapper_get(scope: str, query: str) -> Dict[str, Any]:
    return {'InstanceIds': [query]}


def instance_input_mapper_list(scope: str) -> Dict[str, Any]:
    return {'MaxResults': 100}


def _instance_links(instance: Dict[str, Any], scope: str) -> List:
    links = []

    if instance.get('ImageId'):
        links.append(linked('ec2-image', QueryMethod.GET, instance['ImageId'], scope, in_=True, out=False))

    for nic in instance.get('NetworkInterfaces', []):
        for ip in nic.get('Ipv6Addresses', []):
            if ip.get('Ipv6Address'):
                links.append(linked('ip', QueryMethod.GET, ip['Ipv6Address'], GLOBAL, in_=True, out=True))

        for ip in nic.get('PrivateIpAddresses', []):
            if ip.get('PrivateIpAddress'):
                links.append(linked('ip', QueryMethod.GET, ip['PrivateIpAddress'], GLOBAL, in_=True, out=True))

        if nic.get('SubnetId'):
            links.append(linked('ec2-subnet', QueryMethod.GET, nic['SubnetId'], scope, in_=True, out=False))

        if nic.get('VpcId'):
            links.append(linked('ec2-vpc', QueryMethod.GET, nic['VpcId'], scope, in_=True, out=False))

    if instance.get('PublicDnsName'):
        links.append(linked('dns', QueryMethod.SEARCH, instance['PublicDnsName'], GLOBAL, in_=True, out=True))

    if instance.get('PublicIpAddress'):
        links.append(linked('ip', QueryMethod.GET, instance['PublicIpAddress'], GLOBAL, in_=True, out=True))

    for group in instance.get('SecurityGroups', []):
        if group.get('GroupId'):
            links.append(linked('ec2-security-group', QueryMethod.GET, group['GroupId'], scope, in_=True, out=False))

    return links


def instance_output_mapper(scope: str, output: Dict[str, Any]) -> List[Item]:
    items = []

    for reservation in output.get('Reservations', []):
        for instance in reservation.get('Instances', []):
            state = instance.get('State', {}).get('Name', '')
            items.append(Item(
                type=ITEM_TYPE,
                unique_attribute='instanceId',
                scope=scope,
                attributes=to_attributes(instance, exclude=['tags']),
                tags=tags_to_dict(instance.get('Tags')),
                health=STATE_HEALTH.get(state),
                linked_item_queries=_instance_links(instance, scope),
            ))

    return items


def new_instance_source(client, account_id: str, region: str, limit: Optional[LimitBucket] = None) -> DescribeOnlySource:
    return DescribeOnlySource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        describe_func=lambda c, params: c.describe_instances(**params),
        input_mapper_get=instance_input_mapper_get,
        input_mapper_list=instance_input_mapper_list,
        output_mapper=instance_output_mapper,
        paginator='describe_instances',
    )
