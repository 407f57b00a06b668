"""RDS sources."""

from .db_instance import new_db_instance_source

__all__ = ['new_db_instance_source']
