"""eks-cluster source."""

from typing import Any, Dict, List, Optional

from ...sdp import ErrorType, Health, Item, QueryError, QueryMethod, linked
from ..always_get import AlwaysGetSource
from ..limit_bucket import LimitBucket
from ..shared import arn_search_link, to_attributes

ITEM_TYPE = 'eks-cluster'

GLOBAL = 'global'

STATUS_HEALTH = {
    'CREATING': Health.PENDING,
    'ACTIVE': Health.OK,
    'DELETING': Health.WARNING,
    'FAILED': Health.ERROR,
    'UPDATING': Health.PENDING,
    'PENDING': Health.PENDING,
}

# Child resources that are found by searching with the cluster name
CHILD_TYPES = ('eks-addon', 'eks-fargate-profile', 'eks-nodegroup')


def _cluster_links(cluster: Dict[str, Any], scope: str) -> List:
    links = [linked(t, QueryMethod.SEARCH, cluster['name'], scope, in_=True, out=True) for t in CHILD_TYPES]

    candidates = [
        arn_search_link('iam-role', cluster.get('roleArn')),
        arn_search_link('iam-role', (cluster.get('connectorConfig') or {}).get('roleArn')),
    ]
    for config in cluster.get('encryptionConfig', []):
        candidates.append(arn_search_link('kms-key', (config.get('provider') or {}).get('keyArn')))
    links.extend(link for link in candidates if link is not None)

    if cluster.get('endpoint'):
        links.append(linked('http', QueryMethod.GET, cluster['endpoint'], GLOBAL, in_=True, out=True))

    vpc_config = cluster.get('resourcesVpcConfig') or {}
    if vpc_config.get('clusterSecurityGroupId'):
        links.append(linked(
            'ec2-security-group', QueryMethod.GET, vpc_config['clusterSecurityGroupId'], scope, in_=True, out=False,
        ))
    for group_id in vpc_config.get('securityGroupIds', []):
        links.append(linked('ec2-security-group', QueryMethod.GET, group_id, scope, in_=True, out=False))
    for subnet_id in vpc_config.get('subnetIds', []):
        links.append(linked('ec2-subnet', QueryMethod.GET, subnet_id, scope, in_=True, out=False))
    if vpc_config.get('vpcId'):
        links.append(linked('ec2-vpc', QueryMethod.GET, vpc_config['vpcId'], scope, in_=True, out=False))

    return links


def cluster_get_func(client, scope: str, get_input: Dict[str, Any]) -> Item:
    cluster = client.describe_cluster(**get_input).get('cluster')
    if not cluster:
        raise QueryError(ErrorType.NOTFOUND, "cluster response was empty", scope=scope)

    return Item(
        type=ITEM_TYPE,
        unique_attribute='name',
        scope=scope,
        attributes=to_attributes(cluster, exclude=['clientRequestToken', 'tags']),
        tags=dict(cluster.get('tags') or {}),
        health=STATUS_HEALTH.get(cluster.get('status', '')),
        linked_item_queries=_cluster_links(cluster, scope),
    )


def cluster_list_output_mapper(output: Dict[str, Any], list_input: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [{'name': name} for name in output.get('clusters', [])]


def new_cluster_source(client, account_id: str, region: str, limit: Optional[LimitBucket] = None) -> AlwaysGetSource:
    return AlwaysGetSource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        list_operation='list_clusters',
        list_output_mapper=cluster_list_output_mapper,
        get_func=cluster_get_func,
        get_input_mapper=lambda scope, query: {'name': query},
    )
