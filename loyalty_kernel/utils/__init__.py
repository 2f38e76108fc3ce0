"""Utility modules for the loyalty kernel."""

from loyalty_kernel.utils.throttle import RequestThrottle

__all__ = [
    "RequestThrottle",
]
