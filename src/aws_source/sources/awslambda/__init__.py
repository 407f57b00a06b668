"""Lambda sources. Named awslambda since lambda is a keyword."""

from .function import new_function_source

__all__ = ['new_function_source']
