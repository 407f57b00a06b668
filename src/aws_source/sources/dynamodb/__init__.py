"""DynamoDB sources."""

from .table import new_table_source

__all__ = ['new_table_source']
