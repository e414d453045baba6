"""
Runtime configuration of the reference engine.

Defaults can be overridden through environment variables:

- `CONVREF_NUM_THREADS`: number of worker lanes used by `parallel_nd`
- `CONVREF_PRECOMPUTE_SIZE`: kernel-extent limit of the backward-data
  precomputed-table strategy
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum


DEFAULT_PRECOMPUTE_SIZE = 16


class BwdDataStrategy(Enum):
    """Backward-data inner kernel selection."""

    AUTO = "auto"
    TABLE = "table"
    DIRECT = "direct"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _default_num_workers() -> int:
    return _env_int("CONVREF_NUM_THREADS", os.cpu_count() or 1)


def _default_precompute_size() -> int:
    return _env_int("CONVREF_PRECOMPUTE_SIZE", DEFAULT_PRECOMPUTE_SIZE)


@dataclass(frozen=True)
class RefConfig:
    """
    Engine configuration.

    Attributes
    ----------
    num_workers : int
        Worker lanes for the parallel driver. `1` runs inline.
    precompute_size : int
        Largest kernel extent for which backward-data uses the
        precomputed-table strategy.
    bwd_d_strategy : BwdDataStrategy
        Force a backward-data strategy; `AUTO` picks the table whenever
        every kernel extent fits `precompute_size`.
    """

    num_workers: int = field(default_factory=_default_num_workers)
    precompute_size: int = field(default_factory=_default_precompute_size)
    bwd_d_strategy: BwdDataStrategy = BwdDataStrategy.AUTO

    def __post_init__(self) -> None:
        if self.num_workers <= 0:
            raise ValueError(f"num_workers must be positive, got {self.num_workers}")
        if self.precompute_size <= 0:
            raise ValueError(
                f"precompute_size must be positive, got {self.precompute_size}"
            )
