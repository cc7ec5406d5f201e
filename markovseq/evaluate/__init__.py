"""
Model comparison module.
"""

from .distance import KullbackLeiblerDistance, distance

__all__ = [
    "KullbackLeiblerDistance",
    "distance",
]
