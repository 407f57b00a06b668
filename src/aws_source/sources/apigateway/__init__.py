"""API Gateway sources."""

from .resource import new_resource_source
from .rest_api import new_rest_api_source

__all__ = ['new_resource_source', 'new_rest_api_source']
