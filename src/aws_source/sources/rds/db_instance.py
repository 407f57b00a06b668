"""rds-db-instance source."""

from typing import Any, Dict, List, Optional

from ...sdp import Health, Item, LinkedItemQuery, QueryMethod, linked
from ..describe import DescribeOnlySource
from ..limit_bucket import LimitBucket
from ..shared import arn_search_link, tags_to_dict, to_attributes

ITEM_TYPE = 'rds-db-instance'

GLOBAL = 'global'

STATUS_HEALTH = {
    'available': Health.OK,
    'backing-up': Health.OK,
    'configuring-enhanced-monitoring': Health.PENDING,
    'configuring-iam-database-auth': Health.PENDING,
    'configuring-log-exports': Health.PENDING,
    'converting-to-vpc': Health.PENDING,
    'creating': Health.PENDING,
    'deleting': Health.PENDING,
    'maintenance': Health.PENDING,
    'modifying': Health.PENDING,
    'moving-to-vpc': Health.PENDING,
    'rebooting': Health.PENDING,
    'renaming': Health.PENDING,
    'resetting-master-credentials': Health.PENDING,
    'starting': Health.PENDING,
    'stopping': Health.PENDING,
    'storage-optimization': Health.PENDING,
    'upgrading': Health.PENDING,
    'stopped': Health.WARNING,
    'storage-full': Health.WARNING,
    'failed': Health.ERROR,
    'inaccessible-encryption-credentials': Health.ERROR,
    'incompatible-network': Health.ERROR,
    'incompatible-option-group': Health.ERROR,
    'incompatible-parameters': Health.ERROR,
    'incompatible-restore': Health.ERROR,
    'restore-error': Health.ERROR,
}


def _db_instance_links(instance: Dict[str, Any], scope: str) -> List[LinkedItemQuery]:
    links = []

    endpoint = instance.get('Endpoint') or {}
    if endpoint.get('Address'):
        links.append(linked('dns', QueryMethod.SEARCH, endpoint['Address'], GLOBAL, in_=True, out=True))
        if endpoint.get('Port'):
            links.append(linked(
                'networksocket', QueryMethod.SEARCH, f"{endpoint['Address']}:{endpoint['Port']}", GLOBAL,
                in_=True, out=True,
            ))
    if endpoint.get('HostedZoneId'):
        links.append(linked('route53-hosted-zone', QueryMethod.GET, endpoint['HostedZoneId'], scope, in_=True, out=False))

    for group in instance.get('VpcSecurityGroups', []):
        if group.get('VpcSecurityGroupId'):
            links.append(linked('ec2-security-group', QueryMethod.GET, group['VpcSecurityGroupId'], scope, in_=True, out=False))

    for group in instance.get('DBParameterGroups', []):
        if group.get('DBParameterGroupName'):
            links.append(linked('rds-db-parameter-group', QueryMethod.GET, group['DBParameterGroupName'], scope, in_=True, out=False))

    if instance.get('AvailabilityZone'):
        links.append(linked('ec2-availability-zone', QueryMethod.GET, instance['AvailabilityZone'], scope, in_=False, out=False))

    subnet_group = instance.get('DBSubnetGroup') or {}
    if subnet_group.get('DBSubnetGroupName'):
        links.append(linked('rds-db-subnet-group', QueryMethod.GET, subnet_group['DBSubnetGroupName'], scope, in_=True, out=False))
    if subnet_group.get('VpcId'):
        links.append(linked('ec2-vpc', QueryMethod.GET, subnet_group['VpcId'], scope, in_=True, out=False))

    if instance.get('DBClusterIdentifier'):
        links.append(linked('rds-db-cluster', QueryMethod.GET, instance['DBClusterIdentifier'], scope, in_=True, out=True))

    if instance.get('ActivityStreamKinesisStreamName'):
        links.append(linked('kinesis-stream', QueryMethod.GET, instance['ActivityStreamKinesisStreamName'], scope, in_=False, out=True))

    arn_links = [
        arn_search_link('kms-key', instance.get('KmsKeyId')),
        arn_search_link('kms-key', instance.get('PerformanceInsightsKMSKeyId')),
        arn_search_link('logs-log-stream', instance.get('EnhancedMonitoringResourceArn'), in_=False, out=False),
        arn_search_link('iam-role', instance.get('MonitoringRoleArn')),
        arn_search_link('backup-recovery-point', instance.get('AwsBackupRecoveryPointArn'), in_=False, out=False),
    ]
    arn_links.extend(arn_search_link('iam-role', role.get('RoleArn')) for role in instance.get('AssociatedRoles', []))
    links.extend(link for link in arn_links if link is not None)

    return links


def db_instance_input_mapper_get(scope: str, query: str) -> Dict[str, Any]:
    return {'DBInstanceIdentifier': query}


def db_instance_output_mapper(scope: str, output: Dict[str, Any]) -> List[Item]:
    items = []

    for instance in output.get('DBInstances', []):
        # The subnet group is its own item
        attributes = to_attributes(instance, exclude=['dbSubnetGroup', 'tagList'])
        items.append(Item(
            type=ITEM_TYPE,
            unique_attribute='dbInstanceIdentifier',
            scope=scope,
            attributes=attributes,
            tags=tags_to_dict(instance.get('TagList')),
            health=STATUS_HEALTH.get(instance.get('DBInstanceStatus', '')),
            linked_item_queries=_db_instance_links(instance, scope),
        ))

    return items


def new_db_instance_source(client, account_id: str, region: str, limit: Optional[LimitBucket] = None) -> DescribeOnlySource:
    return DescribeOnlySource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region=region,
        limit=limit,
        describe_func=lambda c, params: c.describe_db_instances(**params),
        input_mapper_get=db_instance_input_mapper_get,
        output_mapper=db_instance_output_mapper,
        paginator='describe_db_instances',
    )
