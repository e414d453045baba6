from ._memory import Memory
from ._args import ArgumentMap

__all__ = ["Memory", "ArgumentMap"]
