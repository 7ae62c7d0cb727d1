"""Numba kernels for ray casting.

This subpackage contains the JIT-compiled Siddon-Jacobs traversal used to
evaluate DRR pixels.
"""

from .siddon_jacobs import (
    _siddon_jacobs_kernel,
    _siddon_jacobs_batch_kernel,
)

__all__ = [
    '_siddon_jacobs_kernel',
    '_siddon_jacobs_batch_kernel',
]
