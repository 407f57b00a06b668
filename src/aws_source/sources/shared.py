"""Helpers shared by all AWS sources."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple
import logging

from botocore.exceptions import ClientError

from ..sdp import ErrorType, LinkedItemQuery, QueryError, QueryMethod, linked

logger = logging.getLogger(__name__)

# Error codes that mean "this thing does not exist" rather than a failure
NOT_FOUND_CODES = {
    'ResourceNotFoundException',
    'NotFoundException',
    'NoSuchEntity',
    'ParameterNotFound',
    'NoSuchBucket',
    'NoSuchHostedZone',
    'QueueDoesNotExist',
    'AWS.SimpleQueueService.NonExistentQueue',
    'DBInstanceNotFound',
    'DBInstanceNotFoundFault',
    'LoadBalancerNotFound',
    'NotFound',
}


def format_scope(account_id: str, region: str) -> str:
    """
    Format a scope from an account ID and region.

    Args:
        account_id: AWS account ID
        region: AWS region, may be empty for account-wide resources

    Returns:
        Scope string in the format {accountID}.{region}
    """
    if not region:
        return account_id
    return f"{account_id}.{region}"


def parse_scope(scope: str) -> Tuple[str, str]:
    """
    Split a scope into account ID and region.

    Raises:
        ValueError: If the scope is not in the format {accountID}.{region}
    """
    parts = scope.split('.')
    if len(parts) > 2 or not parts[0]:
        raise ValueError(f"could not split scope '{scope}' into account and region")
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1]


@dataclass
class ARN:
    partition: str
    service: str
    region: str
    account_id: str
    resource: str

    @property
    def resource_id(self) -> str:
        """Everything after the resource type, which may include slashes."""
        if '/' in self.resource:
            return self.resource.split('/', 1)[1]
        if ':' in self.resource:
            return self.resource.split(':', 1)[1]
        return self.resource

    def __str__(self) -> str:
        return f"arn:{self.partition}:{self.service}:{self.region}:{self.account_id}:{self.resource}"


def parse_arn(arn: str) -> ARN:
    """
    Parse an ARN string.

    Raises:
        ValueError: If the string is not a valid ARN
    """
    parts = arn.split(':', 5)
    if len(parts) != 6 or parts[0] != 'arn':
        raise ValueError(f"'{arn}' is not a valid ARN")
    if not parts[5]:
        raise ValueError(f"ARN '{arn}' has no resource")
    return ARN(
        partition=parts[1],
        service=parts[2],
        region=parts[3],
        account_id=parts[4],
        resource=parts[5],
    )


def parse_arn_in_scope(arn: str, scope: str) -> ARN:
    """
    Parse an ARN that must belong to the given scope.

    Raises:
        ValueError: If the string is not a valid ARN
        QueryError: NOSCOPE if the ARN's account and region are not the scope's
    """
    parsed = parse_arn(arn)
    arn_scope = format_scope(parsed.account_id, parsed.region)
    if arn_scope != scope:
        raise QueryError(
            ErrorType.NOSCOPE,
            f"ARN scope {arn_scope} does not match request scope {scope}",
            scope=scope,
        )
    return parsed


def arn_search_link(item_type: str, arn: Optional[str], in_: bool = True, out: bool = False) -> Optional[LinkedItemQuery]:
    """
    Link to an item by searching for its ARN in the scope the ARN belongs to.

    Returns:
        The linked query, or None if arn is empty or not an ARN
    """
    if not arn:
        return None
    try:
        parsed = parse_arn(arn)
    except ValueError:
        return None
    return linked(item_type, QueryMethod.SEARCH, arn, format_scope(parsed.account_id, parsed.region), in_=in_, out=out)


def wrap_aws_error(err: Exception, scope: str = "") -> QueryError:
    """Convert an exception raised while talking to AWS into a QueryError."""
    if isinstance(err, QueryError):
        return err

    if isinstance(err, ClientError):
        error = err.response.get('Error', {})
        code = error.get('Code', '')
        message = error.get('Message') or str(err)
        if code in NOT_FOUND_CODES or code.endswith('.NotFound'):
            return QueryError(ErrorType.NOTFOUND, message, scope=scope)
        return QueryError(ErrorType.OTHER, f"{code}: {message}", scope=scope)

    return QueryError(ErrorType.OTHER, str(err), scope=scope)


def camel_case(key: str) -> str:
    """Convert an AWS PascalCase key to camelCase, keeping acronyms readable."""
    upper = 0
    while upper < len(key) and key[upper].isupper():
        upper += 1

    if upper == 0:
        return key
    if upper == 1 or upper == len(key):
        return key[:upper].lower() + key[upper:]
    if key[upper].islower():
        # The last capital starts the next word: DBInstance -> dbInstance
        return key[:upper - 1].lower() + key[upper - 1:]
    return key[:upper].lower() + key[upper:]


def _convert(value: Any, exclude: Iterable[str]) -> Any:
    if isinstance(value, dict):
        result = {}
        for k, v in value.items():
            if k == 'ResponseMetadata':
                continue
            new_key = camel_case(k) if isinstance(k, str) else k
            if new_key in exclude:
                continue
            result[new_key] = _convert(v, exclude)
        return result

    if isinstance(value, (list, tuple)):
        converted = [_convert(v, exclude) for v in value]
        if converted and all(isinstance(v, (str, int, float)) for v in converted):
            converted = sorted(converted, key=str)
        return converted

    if isinstance(value, (datetime, date)):
        return value.isoformat()

    if isinstance(value, Decimal):
        return float(value)

    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')

    return value


def to_attributes(data: Dict[str, Any], exclude: Iterable[str] = ()) -> Dict[str, Any]:
    """
    Convert an AWS API structure into item attributes.

    Keys are converted to camelCase, datetimes to ISO strings and lists of
    scalars are sorted so attributes are stable between runs.

    Args:
        data: Dictionary from a boto3 response
        exclude: camelCase attribute names to drop

    Returns:
        Attribute dictionary
    """
    return _convert(data, set(exclude))


def tags_to_dict(tags_list: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
    """
    Convert AWS tags list to dictionary.

    Args:
        tags_list: List of {'Key': 'key', 'Value': 'value'} dicts

    Returns:
        Dictionary of tag key-value pairs
    """
    if not tags_list:
        return {}

    return {tag.get('Key', ''): tag.get('Value', '') for tag in tags_list if tag.get('Key')}


def paginate(client, operation: str, **kwargs) -> Iterator[Dict[str, Any]]:
    """
    Paginate through AWS API responses.

    Args:
        client: boto3 client
        operation: API operation name (e.g. 'describe_vpcs')
        **kwargs: Parameters for the API call

    Yields:
        Page responses from AWS API
    """
    if client.can_paginate(operation):
        paginator = client.get_paginator(operation)
        yield from paginator.paginate(**kwargs)
    else:
        yield getattr(client, operation)(**kwargs)


def iterate_pages(
    call: Callable[..., Dict[str, Any]],
    input_token: str = 'NextToken',
    output_token: str = 'NextToken',
    **kwargs,
) -> Iterator[Dict[str, Any]]:
    """
    Follow a continuation token until the API stops returning one.

    Args:
        call: Bound client method, e.g. client.get_parameters_by_path
        input_token: Request parameter carrying the token
        output_token: Response field carrying the next token
        **kwargs: Parameters for every call

    Yields:
        Each response page exactly once
    """
    params = dict(kwargs)
    seen = set()

    while True:
        page = call(**params)
        yield page

        token = page.get(output_token)
        if not token:
            return
        if token in seen:
            # A repeated token would loop forever
            logger.warning(f"Pagination token repeated for {getattr(call, '__name__', call)}, stopping")
            return
        seen.add(token)
        params[input_token] = token
