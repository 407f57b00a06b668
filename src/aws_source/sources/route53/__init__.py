"""Route 53 sources."""

from .hosted_zone import new_hosted_zone_source

__all__ = ['new_hosted_zone_source']
