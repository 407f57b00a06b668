"""AWS sources and the base classes they are built from."""

from .always_get import AlwaysGetSource
from .base import Source
from .cache import Cache
from .describe import DescribeOnlySource
from .get_list import GetListSource
from .limit_bucket import LimitBucket

__all__ = [
    'Source',
    'DescribeOnlySource',
    'GetListSource',
    'AlwaysGetSource',
    'Cache',
    'LimitBucket',
]
