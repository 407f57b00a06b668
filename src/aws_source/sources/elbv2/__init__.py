"""Elastic Load Balancing v2 sources."""

from .load_balancer import new_load_balancer_source

__all__ = ['new_load_balancer_source']
