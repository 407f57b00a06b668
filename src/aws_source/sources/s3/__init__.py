"""S3 sources."""

from .bucket import new_bucket_source

__all__ = ['new_bucket_source']
