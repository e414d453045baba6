"""
convref: reference (ground-truth) convolution engine.

Typical use::

    from convref import ArgKind, ArgumentMap, ConvProblem, Memory, compute_ref

    prb = ConvProblem.from_spatial(
        mb=1, ic=1, oc=1, input_size=(4, 4), kernel_size=(2, 2)
    )
    args = ArgumentMap(
        {
            ArgKind.SRC: Memory(prb.src_dims, "f32", src),
            ArgKind.WEIGHTS: Memory(prb.wei_dims, "f32", wei),
            ArgKind.BIAS: Memory(prb.bia_dims, "f32", bia),
            ArgKind.DST: Memory(prb.dst_dims, "f32"),
        }
    )
    compute_ref(prb, args)
"""

from .domain import *  # noqa: F401,F403
from .domain import __all__ as _domain_all
from .infrastructure import *  # noqa: F401,F403
from .infrastructure import __all__ as _infrastructure_all

__version__ = "1.0.0"

__all__ = [*_domain_all, *_infrastructure_all]
