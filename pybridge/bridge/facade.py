"""
Typed facade over a session.

A Contract declares which functions a bridged module exposes and what each one
returns. A RemoteModule turns that contract into callables:

    contract = Contract({
        "add": Method(int),
        "count_to": Method(int, stream=True),
    })
    nlp = RemoteModule(session, contract)

    total = await nlp.add(1, 2)          # single value
    async for n in nlp.count_to(3):       # stream of values
        ...
"""

from __future__ import annotations

import collections.abc
import inspect
import logging
import typing
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional

import pydantic
from pydantic import TypeAdapter

from .errors import ContractError
from .launch import describe_target
from .stream import CallStream, shape_adapter

logger = logging.getLogger(__name__)

# Return annotations that mark a function as producing a stream
STREAM_ORIGINS = (
    collections.abc.Iterator,
    collections.abc.Iterable,
    collections.abc.Generator,
)


@dataclass(frozen=True)
class Method:
    """Declared return shape of one remote function."""

    returns: Any = None
    stream: bool = False


class Contract:
    """Mapping of method name to declared return shape, checked when built."""

    def __init__(self, methods: Mapping[str, Any]):
        self._methods: dict[str, Method] = {}
        self._adapters: dict[str, Optional[TypeAdapter]] = {}

        for name, spec in methods.items():
            if not isinstance(name, str) or not name.isidentifier() or name.startswith("_"):
                raise ContractError(f"Invalid method name in contract: {name!r}")
            if not isinstance(spec, Method):
                spec = Method(spec)
            try:
                adapter = shape_adapter(spec.returns)
            except pydantic.PydanticUserError as e:
                raise ContractError(
                    f"Unsupported return shape for '{name}': {spec.returns!r}",
                    {"reason": str(e)},
                ) from e
            self._methods[name] = spec
            self._adapters[name] = adapter

    @classmethod
    def from_class(cls, interface: type) -> "Contract":
        """
        Build a contract from an annotated interface class.

        Public functions become methods; a return annotation of
        ``Iterator[T]``, ``Iterable[T]`` or ``Generator[T, ...]`` declares a
        stream of ``T``, anything else a single value.

        Example:
            class Tokenizer:
                def tokenize(self, text: str) -> list[str]: ...
                def lines(self, path: str) -> Iterator[str]: ...

            contract = Contract.from_class(Tokenizer)
        """
        methods: dict[str, Method] = {}
        for name, func in inspect.getmembers(interface, inspect.isfunction):
            if name.startswith("_"):
                continue
            try:
                hints = typing.get_type_hints(func)
            except (NameError, TypeError) as e:
                raise ContractError(f"Cannot resolve annotations of '{name}': {e}") from e
            methods[name] = _method_from_annotation(hints.get("return", Any))
        return cls(methods)

    def __getitem__(self, name: str) -> Method:
        try:
            return self._methods[name]
        except KeyError:
            raise ContractError(f"Method '{name}' is not declared in the contract") from None

    def __contains__(self, name: object) -> bool:
        return name in self._methods

    def __iter__(self) -> Iterator[str]:
        return iter(self._methods)

    def __len__(self) -> int:
        return len(self._methods)

    def adapter(self, name: str) -> Optional[TypeAdapter]:
        """Validator for the values of ``name`` (None when unchecked)."""
        self[name]
        return self._adapters[name]

    @property
    def names(self) -> list[str]:
        return list(self._methods)


def _method_from_annotation(annotation: Any) -> Method:
    origin = typing.get_origin(annotation)
    if origin in STREAM_ORIGINS:
        args = typing.get_args(annotation)
        return Method(args[0] if args else Any, stream=True)
    if annotation is type(None):
        return Method(None)
    return Method(annotation)


class RemoteModule:
    """
    Callable proxy for a bridged module.

    Every invocation writes its request immediately. Stream methods return the
    CallStream; other methods return an awaitable resolving to the single value.
    Undeclared names raise ContractError without touching the subprocess.
    """

    def __init__(self, session, contract: Contract, timeout: Optional[float] = None):
        self._session = session
        self._contract = contract
        self._timeout = timeout
        self._bound = {name: self._bind(name) for name in contract}

    @property
    def session(self):
        return self._session

    @property
    def contract(self) -> Contract:
        return self._contract

    def _bind(self, name: str):
        spec = self._contract[name]
        adapter = self._contract.adapter(name)

        if spec.stream:
            def invoke_stream(*args: Any) -> CallStream:
                return self._session.call(name, args, adapter=adapter)
            invoke_stream.__name__ = name
            return invoke_stream

        def invoke(*args: Any):
            stream = self._session.call(name, args, adapter=adapter)
            return stream.result(self._timeout)
        invoke.__name__ = name
        return invoke

    def __getattr__(self, name: str):
        bound = self.__dict__.get("_bound")
        if bound is not None and name in bound:
            return bound[name]
        target = getattr(self.__dict__.get("_session"), "target", "?")
        raise ContractError(
            f"Method '{name}' is not declared in the contract for {describe_target(str(target))}"
        )

    def __dir__(self) -> list[str]:
        return sorted(set(super().__dir__()) | set(self._bound))

    def __repr__(self) -> str:
        return f"<RemoteModule methods={self._contract.names} session={self._session!r}>"
