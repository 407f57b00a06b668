"""SSM sources."""

from .parameter import new_parameter_source

__all__ = ['new_parameter_source']
