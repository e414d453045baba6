"""
State-based method dispatch (a.k.a. "control-path" templating) via decorators.

This module routes a single method call to one of several registered
implementations based on the owning object's runtime `_state` value. The
reference dispatcher uses it to express its state machine (delegate,
deconvolution, algorithm selection, direct evaluation) without scattering
if/elif chains through the evaluators.

Core idea
---------
- Define a *base* method on a class (its signature becomes the canonical one).
- Register one "control path" per state, keyed by
  (ClassName, MethodName, StateVal).
- At runtime the installed wrapper reads `self._state` and calls the matching
  implementation as a bound method, `impl(self, *args, **kwargs)`.

Important notes
---------------
- The first registration replaces the base method on the class with the
  dispatching wrapper.
- Registered implementations are stored in a mapping owned by the builder
  returned from `create_path_builder()`. Different builders do not share
  mappings.
"""

from typing import (
    runtime_checkable,
    Callable,
    Hashable,
    Optional,
    Protocol,
    Union,
    Dict,
    Type,
    Any,
)
from typing_extensions import ParamSpec, TypeVar
from collections import namedtuple
from functools import wraps

from abc import abstractmethod

P = ParamSpec("P")
R = TypeVar("R")


MethodKey = namedtuple("MethodKey", ["ClassName", "MethodName", "StateVal"])
"""Key uniquely identifying a control path."""


@runtime_checkable
class StatefulObject(Protocol):
    """
    Object participating in state-based dispatch.

    Implementers provide a `_state` property; `None` is a valid state and
    selects the control path registered under `None`.
    """

    @property
    @abstractmethod
    def _state(self) -> Optional[Any]:
        """Current state value used for dispatch selection."""
        ...


def create_path_builder() -> Callable[
    [
        Type,
        Callable[P, R],
        Hashable,
        Optional[Union[Type[BaseException], Callable[[Callable[P, R], Any], None]]],
    ],
    Callable[[Callable[P, R]], Callable[P, R]],
]:
    """
    Create a "path builder" used to register stateful control paths.

    Usage::

        path = create_path_builder()

        class Machine:
            @property
            def _state(self): ...

            def step(self, x: int) -> int: ...

        @path(Machine, Machine.step, state="A")
        def step_a(self: Machine, x: int) -> int: ...

    Calling `Machine().step(x)` then runs `step_a` whenever `_state == "A"`.

    Returns
    -------
    Callable
        `templator(cls, method, state, trap_exception=None) -> decorator`.
    """
    methods_map: Dict[MethodKey, Callable] = {}

    def templator(
        cls: Type,
        method: Callable[P, R],
        state: Hashable,
        trap_exception: Optional[
            Union[Type[BaseException], Callable[[Callable[P, R], Any], None]]
        ] = None,
    ) -> Callable[[Callable[P, R]], Callable[P, R]]:
        """
        Build a decorator registering a control path implementation.

        Parameters
        ----------
        cls : Type
            Class whose method is replaced by the dispatching wrapper.
        method : Callable[P, R]
            Base method; its metadata is copied onto the wrapper.
        state : Hashable
            State value selecting the decorated implementation.
        trap_exception : optional
            Behavior when no path matches the runtime state:

            - `None`: raise `NotImplementedError`;
            - an exception class: raise it with a descriptive message;
            - any other callable: call `trap_exception(method, state)`, then
              raise `NotImplementedError`.

        Raises
        ------
        TypeError
            If `state` is not hashable.
        """
        try:
            hash(state)
        except TypeError:
            raise TypeError(
                f"The argument for 'state' must be hashable. Got {repr(state)}"
            ) from None

        base_name = method.__name__
        smk = MethodKey(cls.__name__, base_name, state)

        def decorator(sub_method: Callable[P, R]) -> Callable[P, R]:
            methods_map[smk] = sub_method

            if getattr(getattr(cls, base_name, None), "__control_path__", False):
                return sub_method

            @wraps(method)
            def wrapper(self: Any, *args: P.args, **kwargs: P.kwargs) -> Any:
                if not isinstance(self, StatefulObject):
                    raise NotImplementedError(
                        "{} is missing attribute {} (@property)".format(
                            type(self), repr("_state")
                        )
                    )
                cur = self._state
                if sm := methods_map.get(MethodKey(cls.__name__, base_name, cur)):
                    return sm(self, *args, **kwargs)
                msg = "Missing control path (state={}) for {}".format(
                    repr(cur), repr(method)
                )
                if trap_exception is None:
                    raise NotImplementedError(msg)
                if isinstance(trap_exception, type) and issubclass(
                    trap_exception, BaseException
                ):
                    raise trap_exception(msg)
                trap_exception(method, cur)
                raise NotImplementedError(msg)

            wrapper.__control_path__ = True
            setattr(cls, base_name, wrapper)
            return sub_method

        return decorator

    return templator
