"""
Sequence generation module.
"""

from .generator import SequenceGenerator, generate, generate_sequences

__all__ = [
    "SequenceGenerator",
    "generate",
    "generate_sequences",
]
