"""
Reference-computation exceptions for convref.

This module defines the failure taxonomy of the reference engine. Only two
kinds of failure are ever surfaced to the caller:

- programming-invariant violations (inconsistent descriptors, unmapped enum
  values, missing or mis-sized buffers), and
- failures of an externally supplied reference kernel that the dispatcher
  delegated to.

Numeric edge cases (saturation, rounding, the signed-32 cast boundary) are
normalized locally by the pipeline and never raised.
"""

from typing import Optional


class RefComputeError(RuntimeError):
    """
    Base class of every error raised by the reference engine.
    """


class InvariantViolationError(RefComputeError):
    """
    Raised when a caller contract or an internal invariant is violated.

    Examples include `ic % g != 0`, an output extent that does not follow
    from the convolution arithmetic, an unmapped argument role in the
    zero-point remapping, or compensation buffers of different sizes.

    Attributes
    ----------
    what : str
        Short description of the violated invariant.
    """

    def __init__(self, what: str) -> None:
        super().__init__(f"Invariant violated: {what}")
        self.what = what


class MissingArgumentError(InvariantViolationError):
    """
    Raised when an evaluator requires an argument role that the caller did
    not populate in the `ArgumentMap`.

    Attributes
    ----------
    kind : object
        The missing argument role (an `ArgKind` value).
    """

    def __init__(self, kind: object) -> None:
        super().__init__(f"argument {kind} is required but was not provided")
        self.kind = kind


class DelegatedKernelError(RefComputeError):
    """
    Raised when an external reference kernel fails during delegation.

    The original exception (if any) is chained as `__cause__` by the
    dispatcher. No retry is attempted.
    """

    def __init__(self, kernel: object, reason: Optional[str] = None) -> None:
        """
        Initialize the DelegatedKernelError.

        Parameters
        ----------
        kernel : object
            The kernel handle that failed.
        reason : Optional[str]
            Human readable failure reason.
        """
        msg = f"External reference kernel {kernel!r} failed"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.kernel = kernel
