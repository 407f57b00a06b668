"""SNS sources."""

from .topic import new_topic_source

__all__ = ['new_topic_source']
