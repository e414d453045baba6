"""
Reference dispatcher: the single entry point of the engine.

`compute_ref` builds a short-lived `ConvRefDispatcher` whose `_state` is
resolved once from the problem and the registered strategies:

- `DELEGATE`: a caller-supplied reference kernel runs against the same
  argument map and is waited on; all evaluators are bypassed.
- `DECONV`: the problem is a deconvolution; the whole call is forwarded to
  the deconvolution strategy (the default one maps it onto the direct
  convolution evaluators).
- `SELECT_ALGORITHM`: a transform-domain algorithm was requested for f32
  data; the transform-domain strategy runs, or, when none is registered, a
  `RuntimeWarning` is issued and the direct path is taken.
- `DIRECT`: the evaluator matching `ConvProblem.kind` runs.

Routing between states uses the control-path helper, so each state's
behavior lives in its own function.
"""

from __future__ import annotations

import logging
import warnings
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, Union, runtime_checkable

from ..domain._arg_kind import ArgKind
from ..domain._config import RefConfig
from ..domain._data_type import DataType
from ..domain._direction import Algorithm, DirectionKind
from ..domain._errors import DelegatedKernelError, InvariantViolationError
from ..domain._problem import ConvProblem
from ..domain.utils import create_path_builder
from .memory._args import ArgumentMap
from .ops.conv_bwd_data_cpu import compute_ref_direct_bwd_d
from .ops.conv_bwd_weights_cpu import compute_ref_direct_bwd_w
from .ops.conv_fwd_cpu import compute_ref_direct_fwd
from .ops.deconv_cpu import DefaultDeconvReference

logger = logging.getLogger(__name__)


@runtime_checkable
class ReferenceKernel(Protocol):
    """
    Externally supplied, already-validated reference kernel.

    `execute` may run synchronously and return `None`, or return a handle
    exposing `result()` (a `concurrent.futures.Future`) or `wait()`.
    """

    def execute(self, args: ArgumentMap) -> Any: ...


@runtime_checkable
class DeconvReference(Protocol):
    """Strategy evaluating deconvolution problems."""

    def compute_ref(
        self, prb: ConvProblem, args: ArgumentMap, config: Optional[RefConfig] = None
    ) -> None: ...


@runtime_checkable
class TransformDomainReference(Protocol):
    """Strategy evaluating transform-domain (Winograd) problems, any direction."""

    def compute_ref(
        self, prb: ConvProblem, args: ArgumentMap, config: Optional[RefConfig] = None
    ) -> None: ...


KernelLike = Union[ReferenceKernel, Callable[[ArgumentMap], Any]]

DirectEvaluator = Callable[[ConvProblem, ArgumentMap, Optional[RefConfig]], None]

DIRECT_EVALUATORS: Dict[DirectionKind, DirectEvaluator] = {
    DirectionKind.FORWARD: compute_ref_direct_fwd,
    DirectionKind.BACKWARD_DATA: compute_ref_direct_bwd_d,
    DirectionKind.BACKWARD_WEIGHTS: compute_ref_direct_bwd_w,
}
"""Direct evaluator per direction; backward-weights includes the bias pass."""


class DispatchState(Enum):
    DELEGATE = "delegate"
    DECONV = "deconv"
    SELECT_ALGORITHM = "select_algorithm"
    DIRECT = "direct"


def _wait(handle: Any) -> None:
    if handle is None:
        return
    if callable(getattr(handle, "result", None)):
        handle.result()
    elif callable(getattr(handle, "wait", None)):
        handle.wait()


def _source_dt(prb: ConvProblem, args: ArgumentMap) -> Optional[DataType]:
    kind = ArgKind.DIFF_SRC if prb.kind is DirectionKind.BACKWARD_DATA else ArgKind.SRC
    mem = args.get(kind)
    return None if mem is None else mem.dt


class ConvRefDispatcher:
    """
    One dispatch of `compute_ref`.

    Parameters
    ----------
    prb : ConvProblem
        Problem descriptor.
    args : ArgumentMap
        Caller-owned buffers.
    prim_ref : Optional[KernelLike]
        External reference kernel to delegate to.
    deconv_ref : Optional[DeconvReference]
        Deconvolution strategy; `DefaultDeconvReference` when omitted.
    wino_ref : Optional[TransformDomainReference]
        Transform-domain strategy.
    config : Optional[RefConfig]
        Engine configuration passed to every evaluator.
    """

    def __init__(
        self,
        prb: ConvProblem,
        args: ArgumentMap,
        prim_ref: Optional[KernelLike] = None,
        *,
        deconv_ref: Optional[DeconvReference] = None,
        wino_ref: Optional[TransformDomainReference] = None,
        config: Optional[RefConfig] = None,
    ) -> None:
        self.prb = prb
        self.args = args
        self.prim_ref = prim_ref
        self.deconv_ref = deconv_ref or DefaultDeconvReference()
        self.wino_ref = wino_ref
        self.config = config or RefConfig()

    @property
    def _state(self) -> DispatchState:
        if self.prim_ref is not None:
            return DispatchState.DELEGATE
        if self.prb.is_deconv:
            return DispatchState.DECONV
        if self.prb.alg is Algorithm.WINO and (
            _source_dt(self.prb, self.args) is DataType.F32
        ):
            return DispatchState.SELECT_ALGORITHM
        return DispatchState.DIRECT

    def run(self) -> None:
        """Evaluate the problem according to the current state."""
        ...


path = create_path_builder()


@path(ConvRefDispatcher, ConvRefDispatcher.run, DispatchState.DELEGATE)
def _run_delegate(self: ConvRefDispatcher) -> None:
    kernel = self.prim_ref
    logger.debug("delegating %s to external kernel %r", self.prb.kind.value, kernel)
    try:
        if isinstance(kernel, ReferenceKernel):
            handle = kernel.execute(self.args)
        else:
            handle = kernel(self.args)
        _wait(handle)
    except Exception as e:
        raise DelegatedKernelError(kernel, str(e)) from e


@path(ConvRefDispatcher, ConvRefDispatcher.run, DispatchState.DECONV)
def _run_deconv(self: ConvRefDispatcher) -> None:
    logger.debug(
        "forwarding deconvolution %s to %s",
        self.prb.kind.value,
        type(self.deconv_ref).__name__,
    )
    self.deconv_ref.compute_ref(self.prb, self.args, self.config)


@path(ConvRefDispatcher, ConvRefDispatcher.run, DispatchState.SELECT_ALGORITHM)
def _run_select_algorithm(self: ConvRefDispatcher) -> None:
    if self.wino_ref is not None:
        logger.debug("transform-domain reference for %s", self.prb.kind.value)
        self.wino_ref.compute_ref(self.prb, self.args, self.config)
        return
    warnings.warn(
        "No transform-domain reference registered; "
        "falling back to the direct convolution reference.",
        RuntimeWarning,
        stacklevel=4,
    )
    _run_direct(self)


@path(ConvRefDispatcher, ConvRefDispatcher.run, DispatchState.DIRECT)
def _run_direct(self: ConvRefDispatcher) -> None:
    evaluator = DIRECT_EVALUATORS.get(self.prb.kind)
    if evaluator is None:
        raise InvariantViolationError(f"unmapped direction kind {self.prb.kind!r}")
    logger.debug(
        "direct %s evaluator (bias=%s, workers=%d)",
        self.prb.kind.value,
        self.prb.has_bias,
        self.config.num_workers,
    )
    evaluator(self.prb, self.args, self.config)


def compute_ref(
    prb: ConvProblem,
    args: ArgumentMap,
    prim_ref: Optional[KernelLike] = None,
    *,
    deconv_ref: Optional[DeconvReference] = None,
    wino_ref: Optional[TransformDomainReference] = None,
    config: Optional[RefConfig] = None,
) -> None:
    """
    Compute the reference result of `prb` into the destination-side buffers
    of `args`.

    Parameters
    ----------
    prb : ConvProblem
        Problem descriptor.
    args : ArgumentMap
        Caller-owned buffers; only the output roles of the resolved direction
        are written.
    prim_ref : Optional[KernelLike]
        When given, executed against `args` (and waited on) instead of any
        evaluator.
    deconv_ref : Optional[DeconvReference]
        Deconvolution strategy for problems with `is_deconv`.
    wino_ref : Optional[TransformDomainReference]
        Transform-domain strategy for `Algorithm.WINO` problems.
    config : Optional[RefConfig]
        Worker count and backward-data kernel strategy.

    Raises
    ------
    DelegatedKernelError
        If the delegated kernel fails; the original error is the cause.
    InvariantViolationError
        On inconsistent buffers or attributes.
    """
    ConvRefDispatcher(
        prb,
        args,
        prim_ref,
        deconv_ref=deconv_ref,
        wino_ref=wino_ref,
        config=config,
    ).run()
