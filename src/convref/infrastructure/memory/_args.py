"""
Argument map: named tensor buffers keyed by logical role.
"""

from __future__ import annotations

from typing import Dict, Iterator, Mapping, Optional, Tuple, Union

from ...domain._arg_kind import POST_OP_SRC_BASE, ArgKind
from ...domain._errors import InvariantViolationError, MissingArgumentError
from ._memory import Memory


Key = Union[ArgKind, int]


class ArgumentMap:
    """
    Mapping from argument role to `Memory`.

    The caller owns the map and the buffers. Evaluators only look buffers up
    and write into the destination-side ones; nothing is added, removed or
    reallocated during an evaluation.

    Keys are `ArgKind` members or the integer keys returned by
    `post_op_src(i)` for binary post-op operands.
    """

    __slots__ = ("_args",)

    def __init__(self, args: Optional[Mapping[Key, Memory]] = None) -> None:
        self._args: Dict[int, Memory] = {}
        for k, v in (args or {}).items():
            self.set(k, v)

    def set(self, kind: Key, mem: Memory) -> None:
        if not isinstance(mem, Memory):
            raise InvariantViolationError(
                f"argument {kind!r} must be a Memory, got {type(mem).__name__}"
            )
        self._args[int(kind)] = mem

    def __setitem__(self, kind: Key, mem: Memory) -> None:
        self.set(kind, mem)

    def find(self, kind: Key) -> Memory:
        """
        Return the buffer of `kind`.

        Raises
        ------
        MissingArgumentError
            If the role was not populated.
        """
        mem = self._args.get(int(kind))
        if mem is None:
            raise MissingArgumentError(_name(kind))
        return mem

    def __getitem__(self, kind: Key) -> Memory:
        return self.find(kind)

    def get(self, kind: Key) -> Optional[Memory]:
        return self._args.get(int(kind))

    def __contains__(self, kind: object) -> bool:
        try:
            return int(kind) in self._args
        except (TypeError, ValueError):
            return False

    def __len__(self) -> int:
        return len(self._args)

    def __iter__(self) -> Iterator[int]:
        return iter(self._args)

    def items(self) -> Iterator[Tuple[int, Memory]]:
        return iter(self._args.items())

    def remapped(self, mapping: Mapping[Key, Key]) -> "ArgumentMap":
        """
        New map sharing the same buffers under different roles.

        Every `(new_role, old_role)` pair in `mapping` exposes the buffer of
        `old_role` (when present) as `new_role`. Roles not mentioned in
        `mapping` keep their buffer.
        """
        out = ArgumentMap()
        renamed = {int(old) for old in mapping.values()}
        for k, v in self._args.items():
            if k not in renamed:
                out._args[k] = v
        for new, old in mapping.items():
            mem = self._args.get(int(old))
            if mem is not None:
                out._args[int(new)] = mem
        return out


def _name(kind: Key) -> str:
    try:
        return ArgKind(int(kind)).name
    except ValueError:
        return f"POST_OP_SRC({int(kind) - POST_OP_SRC_BASE})"
