"""EKS sources."""

from .cluster import new_cluster_source

__all__ = ['new_cluster_source']
