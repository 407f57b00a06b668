"""EC2 sources."""

from .instance import new_instance_source
from .security_group import new_security_group_source
from .subnet import new_subnet_source
from .vpc import new_vpc_source

__all__ = [
    'new_instance_source',
    'new_security_group_source',
    'new_subnet_source',
    'new_vpc_source',
]
