"""
Helpers for integration tests that run against a real AWS account.

Every resource a run creates carries the run's tags, so teardown only ever
deletes resources from the same run.
"""

import logging
import os
import socket
from typing import Dict, Iterable, List, Tuple

import boto3
import pytest

from aws_source.auth import get_account_id
from aws_source.sdp import Item
from aws_source.sources.shared import iterate_pages, paginate, tags_to_dict

logger = logging.getLogger(__name__)

TAG_TEST_KEY = "test"
TAG_TEST_VALUE = "true"
TAG_TEST_ID_KEY = "test-id"
TAG_TEST_TYPE_KEY = "test-type"
TAG_RESOURCE_ID_KEY = "resource-id"

SSM = "ssm"
API_GATEWAY = "apigateway"

# DeleteParameters accepts at most 10 names per call
DELETE_PARAMETERS_BATCH_SIZE = 10

TRUE_VALUES = {"1", "t", "true", "y", "yes", "on"}


def should_run_integration_tests() -> bool:
    return os.environ.get("RUN_INTEGRATION_TESTS", "").strip().lower() in TRUE_VALUES


requires_integration = pytest.mark.skipif(
    not should_run_integration_tests(),
    reason="set RUN_INTEGRATION_TESTS=true to run against a real AWS account",
)


def test_id() -> str:
    """ID of this test run, shared by every resource it creates."""
    return os.environ.get("INTEGRATION_TEST_ID") or socket.gethostname()


# Not a test
test_id.__test__ = False


def aws_settings() -> Tuple[boto3.Session, str, str]:
    """Session from the local AWS config, with its account ID and region."""
    session = boto3.Session()
    if not session.region_name:
        raise RuntimeError("no region set, use AWS_REGION or AWS_DEFAULT_REGION")
    return session, get_account_id(session), session.region_name


def resource_name(group: str, name: str, *extra: str) -> str:
    """e.g. integration-test-apigateway-rest-api-myhost"""
    return "-".join(["integration-test", group, name, *extra])


def resource_tags(group: str, name: str, *extra: str) -> Dict[str, str]:
    return {
        TAG_TEST_KEY: TAG_TEST_VALUE,
        TAG_TEST_TYPE_KEY: f"{group}-integration-tests",
        TAG_TEST_ID_KEY: test_id(),
        TAG_RESOURCE_ID_KEY: resource_name(group, name, *extra),
    }


def has_tags(tags: Dict[str, str], required: Dict[str, str]) -> bool:
    return all(tags.get(key) == value for key, value in required.items())


def unique_attribute_value(items: Iterable[Item], required_tags: Dict[str, str]) -> str:
    """
    Unique attribute value of the one item carrying the required tags.

    Raises:
        AssertionError: If there isn't exactly one such item
    """
    matches = [item for item in items if has_tags(item.tags, required_tags)]
    assert len(matches) == 1, f"expected 1 item tagged {required_tags}, got {len(matches)}"
    return matches[0].unique_attribute_value()


def tagged_parameter_names(client, path: str, run_id: str) -> List[str]:
    """Names of parameters under path that belong to the test run."""
    names = []
    pages = iterate_pages(
        client.get_parameters_by_path,
        Path=path,
        Recursive=True,
        ParameterFilters=[{'Key': f"tag:{TAG_TEST_ID_KEY}", 'Values': [run_id]}],
    )

    for page in pages:
        for parameter in page.get('Parameters', []):
            # Check the tags ourselves in case the filter is ignored
            response = client.list_tags_for_resource(ResourceType='Parameter', ResourceId=parameter['Name'])
            if tags_to_dict(response.get('TagList')).get(TAG_TEST_ID_KEY) == run_id:
                names.append(parameter['Name'])

    return names


def delete_tagged_parameters(client, path: str, run_id: str) -> int:
    """
    Delete every parameter under path tagged with the run ID.

    Returns:
        Number of parameters deleted
    """
    names = tagged_parameter_names(client, path, run_id)
    deleted = 0

    for start in range(0, len(names), DELETE_PARAMETERS_BATCH_SIZE):
        batch = names[start:start + DELETE_PARAMETERS_BATCH_SIZE]
        response = client.delete_parameters(Names=batch)
        deleted += len(response.get('DeletedParameters', []))
        if response.get('InvalidParameters'):
            logger.warning(f"Could not delete parameters: {response['InvalidParameters']}")

    logger.info(f"Deleted {deleted} parameters under {path}")
    return deleted


def delete_tagged_rest_apis(client, required_tags: Dict[str, str]) -> List[str]:
    """
    Delete every REST API carrying the required tags.

    Returns:
        IDs of the deleted APIs
    """
    doomed = []
    for page in paginate(client, 'get_rest_apis'):
        for api in page.get('items', []):
            if has_tags(api.get('tags') or {}, required_tags):
                doomed.append(api['id'])

    for api_id in doomed:
        client.delete_rest_api(restApiId=api_id)
        logger.info(f"Deleted REST API {api_id}")

    return doomed
