"""elbv2-load-balancer source."""

from typing import Any, Dict, List, Optional

from ...sdp import Health, Item, QueryMethod, linked
from ..describe import DescribeOnlySource
from ..limit_bucket import LimitBucket
from ..shared import to_attributes

ITEM_TYPE = 'elbv2-load-balancer'

GLOBAL = 'global'

STATE_HEALTH = {
    'active': Health.OK,
    'provisioning': Health.PENDING,
    'active_impaired': Health.WARNING,
    'failed': Health.ERROR,
}


def load_balancer_input_mapper_get(scope: str, query: str) -> Dict[str, Any]:
    return {'Names': [query]}


def _load_balancer_links(lb: Dict[str, Any], scope: str) -> List:
    links = []

    if lb.get('LoadBalancerArn'):
        links.append(linked('elbv2-target-group', QueryMethod.SEARCH, lb['LoadBalancerArn'], scope, in_=False, out=True))
        links.append(linked('elbv2-listener', QueryMethod.SEARCH, lb['LoadBalancerArn'], scope, in_=False, out=True))

    if lb.get('DNSName'):
        links.append(linked('dns', QueryMethod.SEARCH, lb['DNSName'], GLOBAL, in_=True, out=True))

    if lb.get('CanonicalHostedZoneId'):
        links.append(linked('route53-hosted-zone', QueryMethod.GET, lb['CanonicalHostedZoneId'], scope, in_=True, out=False))

    if lb.get('VpcId'):
        links.append(linked('ec2-vpc', QueryMethod.GET, lb['VpcId'], scope, in_=True, out=False))

    for zone in lb.get('AvailabilityZones', []):
        if zone.get('ZoneName'):
            links.append(linked('ec2-availability-zone', QueryMethod.GET, zone['ZoneName'], scope, in_=False, out=False))
        if zone.get('SubnetId'):
            links.append(linked('ec2-subnet', QueryMethod.GET, zone['SubnetId'], scope, in_=True, out=False))

        for address in zone.get('LoadBalancerAddresses', []):
            if address.get('AllocationId'):
                links.append(linked('ec2-address', QueryMethod.GET, address['AllocationId'], scope, in_=True, out=False))
            for key in ('IPv6Address', 'IpAddress', 'PrivateIPv4Address'):
                if address.get(key):
                    links.append(linked('ip', QueryMethod.GET, address[key], GLOBAL, in_=True, out=False))

    for group_id in lb.get('SecurityGroups', []):
        links.append(linked('ec2-security-group', QueryMethod.GET, group_id, scope, in_=True, out=False))

    if lb.get('CustomerOwnedIpv4Pool'):
        links.append(linked('ec2-coip-pool', QueryMethod.GET, lb['CustomerOwnedIpv4Pool'], scope, in_=True, out=False))

    return links


def load_balancer_output_mapper(scope: str, output: Dict[str, Any]) -> List[Item]:
    items = []

    for lb in output.get('LoadBalancers', []):
        items.append(Item(
            type=ITEM_TYPE,
            unique_attribute='loadBalancerName',
            scope=scope,
            attributes=to_attributes(lb),
            health=STATE_HEALTH.get((lb.get('State') or {}).get('Code', '')),
            linked_item_queries=_load_balancer_links(lb, scope),
        ))

    return items


def new_load_balancer_source(
    client, account_id: str, region: str, limit: Optional[LimitBucket] = None
) -> DescribeOnlySource:
    return DescribeOnlySource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        describe_func=lambda c, params: c.describe_load_balancers(**params),
        input_mapper_get=load_balancer_input_mapper_get,
        output_mapper=load_balancer_output_mapper,
        paginator='describe_load_balancers',
    )
