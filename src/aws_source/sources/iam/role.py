"""iam-role source.

IAM is account-wide so roles are scoped to the account ID alone.
"""

from typing import Any, Dict, Iterator, Optional

from ...sdp import Item
from ..get_list import GetListSource
from ..limit_bucket import LimitBucket
from ..shared import arn_search_link, paginate, parse_arn_in_scope, tags_to_dict, to_attributes

ITEM_TYPE = 'iam-role'

# IAM has very low rate limits
ROLE_CACHE_DURATION = 3 * 60 * 60.0


def _with_attached_policies(client, role: Dict[str, Any]) -> Dict[str, Any]:
    policies = []
    for page in paginate(client, 'list_attached_role_policies', RoleName=role['RoleName']):
        policies.extend(page.get('AttachedPolicies', []))
    return {**role, 'AttachedPolicies': policies}


def role_get_func(client, scope: str, query: str) -> Dict[str, Any]:
    return _with_attached_policies(client, client.get_role(RoleName=query)['Role'])


def role_list_func(client, scope: str) -> Iterator[Dict[str, Any]]:
    for page in paginate(client, 'list_roles'):
        for role in page.get('Roles', []):
            yield _with_attached_policies(client, role)


def role_search_func(client, scope: str, query: str) -> Iterator[Dict[str, Any]]:
    """
    Search by ARN. Role ARNs include the role's path, e.g.
    arn:aws:iam::123456789012:role/service-role/lambda-exec, so the name is
    the last segment.
    """
    arn = parse_arn_in_scope(query, scope)
    return iter([role_get_func(client, scope, arn.resource.rsplit('/', 1)[-1])])


def role_list_tags(client, role: Dict[str, Any]) -> Dict[str, str]:
    tags = []
    for page in paginate(client, 'list_role_tags', RoleName=role['RoleName']):
        tags.extend(page.get('Tags', []))
    return tags_to_dict(tags)


def role_item_mapper(scope: str, role: Dict[str, Any]) -> Item:
    item = Item(
        type=ITEM_TYPE,
        unique_attribute='roleName',
        scope=scope,
        attributes=to_attributes(role, exclude=['tags']),
    )

    for policy in role.get('AttachedPolicies', []):
        # Changing the policy affects the role
        link = arn_search_link('iam-policy', policy.get('PolicyArn'), in_=True, out=False)
        if link is not None:
            item.linked_item_queries.append(link)

    return item


def new_role_source(client, account_id: str, limit: Optional[LimitBucket] = None) -> GetListSource:
    return GetListSource(
        item_type=ITEM_TYPE,
        client=client,
        account_id=account_id,
        region='',
        limit=limit,
        cache_duration=ROLE_CACHE_DURATION,
        get_func=role_get_func,
        list_func=role_list_func,
        search_func=role_search_func,
        list_tags_func=role_list_tags,
        item_mapper=role_item_mapper,
    )
