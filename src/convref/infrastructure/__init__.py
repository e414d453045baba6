"""
NumPy-backed runtime of the reference engine.
"""

from ._dispatcher import (
    ConvRefDispatcher,
    DeconvReference,
    DispatchState,
    ReferenceKernel,
    TransformDomainReference,
    compute_ref,
)
from .memory import ArgumentMap, Memory
from .ops import DefaultDeconvReference, compute_ref_reorder
from .parallel import parallel_nd

__all__ = [
    "ConvRefDispatcher",
    "DeconvReference",
    "DispatchState",
    "ReferenceKernel",
    "TransformDomainReference",
    "compute_ref",
    "ArgumentMap",
    "Memory",
    "DefaultDeconvReference",
    "compute_ref_reorder",
    "parallel_nd",
]
