"""IAM sources."""

from .role import new_role_source

__all__ = ['new_role_source']
