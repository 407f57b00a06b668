"""Registry that builds every source for an account and region."""

from typing import Callable, Dict, List, NamedTuple, Optional
import logging

from botocore.config import Config

from .. import __version__
from .apigateway import new_resource_source, new_rest_api_source
from .awslambda import new_function_source
from .base import Source
from .dynamodb import new_table_source
from .ec2 import new_instance_source, new_security_group_source, new_subnet_source, new_vpc_source
from .eks import new_cluster_source
from .elbv2 import new_load_balancer_source
from .iam import new_role_source
from .limit_bucket import LimitBucket
from .rds import new_db_instance_source
from .route53 import new_hosted_zone_source
from .s3 import new_bucket_source
from .sns import new_topic_source
from .sqs import new_queue_source
from .ssm import new_parameter_source

logger = logging.getLogger(__name__)

USER_AGENT = f"aws-source/{__version__}"


class SourceSpec(NamedTuple):
    """How to build one source: the boto3 service and the limit bucket it shares."""
    service: str
    factory: Callable[..., Source]
    limit: Optional[str] = None


REGIONAL_SOURCES: List[SourceSpec] = [
    SourceSpec('ec2', new_vpc_source, 'ec2'),
    SourceSpec('ec2', new_subnet_source, 'ec2'),
    SourceSpec('ec2', new_security_group_source, 'ec2'),
    SourceSpec('ec2', new_instance_source, 'ec2'),
    SourceSpec('ssm', new_parameter_source),
    SourceSpec('apigateway', new_rest_api_source),
    SourceSpec('apigateway', new_resource_source),
    SourceSpec('rds', new_db_instance_source),
    SourceSpec('elbv2', new_load_balancer_source),
    SourceSpec('lambda', new_function_source),
    SourceSpec('dynamodb', new_table_source),
    SourceSpec('eks', new_cluster_source),
    SourceSpec('sqs', new_queue_source),
    SourceSpec('sns', new_topic_source),
]

# Account-wide resources, registered once from the first region
GLOBAL_SOURCES: List[SourceSpec] = [
    SourceSpec('route53', new_hosted_zone_source),
    SourceSpec('s3', new_bucket_source),
]

# max_capacity, refill_rate
LIMITS = {
    'ec2': (50, 10),
    'iam': (10, 10),
}


def client_config() -> Config:
    return Config(user_agent_extra=USER_AGENT, retries={'mode': 'adaptive'})


def new_limit(name: str) -> LimitBucket:
    """Create and start the shared limit bucket for an API."""
    max_capacity, refill_rate = LIMITS[name]
    bucket = LimitBucket(max_capacity, refill_rate)
    bucket.start()
    return bucket


class SourceRegistry:
    """
    Builds sources from boto3 sessions and owns the limit buckets they share.

    One set of limits is kept per region since AWS throttles per region,
    plus one for IAM which is global.
    """

    def __init__(self):
        self.limits: Dict[str, LimitBucket] = {}

    def _limit(self, name: Optional[str], region: str) -> Optional[LimitBucket]:
        if name is None:
            return None
        key = name if name == 'iam' else f"{name}.{region}"
        if key not in self.limits:
            self.limits[key] = new_limit(name)
        return self.limits[key]

    def build_regional_sources(self, session, account_id: str, region: str) -> List[Source]:
        """Build every regional source for one account and region."""
        clients = {}
        sources = []

        for spec in REGIONAL_SOURCES:
            if spec.service not in clients:
                clients[spec.service] = session.client(spec.service, region_name=region, config=client_config())
            sources.append(spec.factory(
                clients[spec.service], account_id, region, limit=self._limit(spec.limit, region),
            ))

        logger.debug(f"Built {len(sources)} regional sources for {account_id}.{region}")
        return sources

    def build_global_sources(self, session, account_id: str, region: str) -> List[Source]:
        """Build sources for account-wide resources. Call once per account."""
        sources = []

        for spec in GLOBAL_SOURCES:
            client = session.client(spec.service, region_name=region, config=client_config())
            sources.append(spec.factory(client, account_id, region, limit=self._limit(spec.limit, region)))

        iam = session.client('iam', region_name=region, config=client_config())
        sources.append(new_role_source(iam, account_id, limit=self._limit('iam', region)))

        logger.debug(f"Built {len(sources)} global sources for {account_id}")
        return sources

    def stop(self):
        """Stop refilling all limit buckets."""
        for bucket in self.limits.values():
            bucket.stop()
        self.limits.clear()
