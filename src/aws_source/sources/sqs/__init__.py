"""SQS sources."""

from .queue import new_queue_source

__all__ = ['new_queue_source']
