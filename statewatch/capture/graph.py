"""Cycle-safe, depth-bounded capture of live value graphs.

A capture is an isolated copy of a value that shares nothing mutable with the
original:
- Primitives are copied by value
- Composites (mappings, sequences, sets, dataclasses, plain objects) become
  ordinary dicts keyed by key, index, field or attribute name
- External references (modules, functions, tasks, locks, files, anything a
  registered descriptor provider claims) become a small descriptor dict
- Cycles become CYCLE, subtrees past the depth cap become their string form

Every value is classified exactly once into a NodeKind when it is reached.
"""

import asyncio
import dataclasses
import datetime
import enum
import functools
import io
import logging
import socket
import threading
import types
from collections.abc import Mapping, Set
from decimal import Decimal
from fractions import Fraction
from typing import Any, Callable, Dict, Iterator, List, Optional, Set as SetType, Tuple, Union

from ..utils.errors import CaptureFailure

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 12

CYCLE = "<cycle>"
EXTERNAL_FLAG = "is_external_ref"

# Describes an external object as (kind, name); None means "not mine".
Describer = Callable[[Any], Optional[Tuple[str, str]]]

_PRIMITIVE_TYPES = (
    type(None),
    bool,
    int,
    float,
    complex,
    str,
    bytes,
    bytearray,
    Decimal,
    Fraction,
    enum.Enum,
    datetime.date,
    datetime.time,
    datetime.timedelta,
    datetime.timezone,
)

_LOCK_TYPES = (
    type(threading.Lock()),
    type(threading.RLock()),
    threading.Condition,
    threading.Event,
    threading.Semaphore,
    asyncio.Lock,
    asyncio.Event,
    asyncio.Condition,
    asyncio.Semaphore,
)

_CALLABLE_TYPES = (
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
    types.BuiltinMethodType,
    functools.partial,
)

_RUNTIME_TYPES = (
    types.CoroutineType,
    types.GeneratorType,
    types.AsyncGeneratorType,
    types.FrameType,
    types.TracebackType,
    asyncio.Future,
    asyncio.AbstractEventLoop,
    threading.Thread,
    socket.socket,
    io.IOBase,
)


class NodeKind(str, enum.Enum):
    """What a value is, decided once when the capture reaches it."""

    PRIMITIVE = "primitive"
    COMPOSITE = "composite"
    EXTERNAL = "external"
    UNREPRESENTABLE = "unrepresentable"


class DescriptorRegistry:
    """Providers that turn host objects into external-reference descriptors.

    Usage:
        registry = DescriptorRegistry()
        registry.register(Widget, lambda w: ("Widget", w.title))
        capture(window, descriptors=registry)
    """

    def __init__(self):
        self._providers: List[Tuple[Callable[[Any], bool], Describer]] = []

    def register(
        self,
        match: Union[type, Tuple[type, ...], Callable[[Any], bool]],
        describe: Optional[Describer] = None,
    ) -> None:
        """Register a provider.

        Args:
            match: A type (or tuple of types) or a predicate over values
            describe: Returns (kind, name); defaults to the type name and the
                object's ``name``/``__name__`` attribute
        """
        if isinstance(match, type) or isinstance(match, tuple):
            types_ = match

            def predicate(value: Any) -> bool:
                return isinstance(value, types_)

        else:
            predicate = match
        self._providers.append((predicate, describe or default_description))

    def describe(self, value: Any) -> Optional[Tuple[str, str]]:
        """Return (kind, name) from the first provider that claims ``value``."""
        for predicate, describe in self._providers:
            try:
                if predicate(value):
                    return describe(value)
            except Exception as e:
                logger.debug(f"Descriptor provider failed for {type(value).__name__}: {e}")
        return None

    def __len__(self) -> int:
        return len(self._providers)


def default_description(value: Any) -> Tuple[str, str]:
    """Type tag and display name for an external object."""
    if isinstance(value, types.ModuleType):
        return "module", value.__name__
    if isinstance(value, type):
        return "class", value.__qualname__
    if isinstance(value, asyncio.Task):
        return "Task", value.get_name()
    if isinstance(value, threading.Thread):
        return "Thread", value.name
    name = getattr(value, "__qualname__", None) or getattr(value, "__name__", None)
    if name is None:
        name = getattr(value, "name", "")
    return type(value).__name__, str(name)


def safe_repr(value: Any) -> str:
    """Best-effort string form of ``value``; never raises."""
    try:
        return str(value)
    except Exception:
        pass
    try:
        return repr(value)
    except Exception:
        return f"<unrepresentable {type(value).__name__}>"


def _is_composite(value: Any) -> bool:
    if isinstance(value, (Mapping, list, tuple, Set)):
        return True
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return True
    if hasattr(value, "__dict__") or hasattr(type(value), "__slots__"):
        return True
    # Other sequence types (deque, array, range, ...)
    return hasattr(value, "__iter__") and hasattr(value, "__len__") and hasattr(value, "__getitem__")


def classify(value: Any, descriptors: Optional[DescriptorRegistry] = None) -> NodeKind:
    """Decide the NodeKind of a value."""
    if isinstance(value, _PRIMITIVE_TYPES):
        return NodeKind.PRIMITIVE
    if isinstance(value, BaseException):
        return NodeKind.UNREPRESENTABLE
    if descriptors is not None and descriptors.describe(value) is not None:
        return NodeKind.EXTERNAL
    if isinstance(value, (types.ModuleType, type)):
        return NodeKind.EXTERNAL
    if isinstance(value, _CALLABLE_TYPES + _RUNTIME_TYPES + _LOCK_TYPES):
        return NodeKind.EXTERNAL
    try:
        if _is_composite(value):
            return NodeKind.COMPOSITE
    except Exception:
        pass
    return NodeKind.UNREPRESENTABLE


def external_descriptor(
    value: Any, descriptors: Optional[DescriptorRegistry] = None
) -> Dict[str, Any]:
    """Descriptor dict standing in for an external reference."""
    described = descriptors.describe(value) if descriptors is not None else None
    kind, name = described if described is not None else default_description(value)
    return {EXTERNAL_FLAG: True, "kind": kind, "name": name}


def is_external_descriptor(node: Any) -> bool:
    return isinstance(node, dict) and node.get(EXTERNAL_FLAG) is True


def _capture_key(key: Any) -> Any:
    if isinstance(key, (str, int, float, bool, type(None))):
        return key
    return safe_repr(key)


def _unique_key(key: Any, taken: Mapping) -> str:
    """Name for a key whose captured form collides with an earlier one.

    ``{(1, 2): "a", "(1, 2)": "b"}`` captures as
    ``{"(1, 2)": "a", "(1, 2) <str>": "b"}``.
    """
    base = f"{safe_repr(key)} <{type(key).__name__}>"
    candidate, n = base, 2
    while candidate in taken:
        candidate = f"{base} #{n}"
        n += 1
    return candidate


def _slot_names(cls: type) -> Iterator[str]:
    for klass in cls.__mro__:
        slots = klass.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for name in slots:
            if name not in ("__dict__", "__weakref__"):
                yield name


def composite_fields(value: Any) -> List[Tuple[Any, Any]]:
    """Snapshot the (key, child) pairs of a composite before recursing."""
    if isinstance(value, Mapping):
        return list(value.items())
    if isinstance(value, Set):
        return list(enumerate(sorted(value, key=safe_repr)))
    if isinstance(value, (list, tuple)):
        return list(enumerate(value))
    if dataclasses.is_dataclass(value):
        return [(f.name, getattr(value, f.name)) for f in dataclasses.fields(value)]

    attrs = getattr(value, "__dict__", None)
    slots = list(_slot_names(type(value)))
    if attrs is None and not slots:
        return list(enumerate(value))

    pairs: List[Tuple[Any, Any]] = []
    if isinstance(attrs, Mapping):
        pairs.extend(attrs.items())
    for name in slots:
        try:
            pairs.append((name, getattr(value, name)))
        except AttributeError:
            continue
    return pairs


class _Capturer:
    """One capture call; the path set never outlives it."""

    def __init__(self, max_depth: int, descriptors: Optional[DescriptorRegistry]):
        self.max_depth = max_depth
        self.descriptors = descriptors
        self._path: SetType[int] = set()

    def copy(self, value: Any, depth: int) -> Any:
        kind = classify(value, self.descriptors)

        if kind is NodeKind.PRIMITIVE:
            return bytes(value) if isinstance(value, bytearray) else value
        if kind is NodeKind.EXTERNAL:
            return external_descriptor(value, self.descriptors)
        if kind is NodeKind.UNREPRESENTABLE:
            return safe_repr(value)

        if depth > self.max_depth:
            return safe_repr(value)

        marker = id(value)
        if marker in self._path:
            return CYCLE

        self._path.add(marker)
        try:
            try:
                pairs = composite_fields(value)
            except Exception as e:
                logger.debug(f"Could not enumerate {type(value).__name__}: {e}")
                return safe_repr(value)

            out: Dict[Any, Any] = {}
            for key, child in pairs:
                field_key = _capture_key(key)
                if field_key in out:
                    field_key = _unique_key(key, out)
                try:
                    out[field_key] = self.copy(child, depth + 1)
                except Exception as e:
                    logger.debug(f"Field {field_key!r} degraded to string: {e}")
                    out[field_key] = safe_repr(child)
            return out
        finally:
            self._path.discard(marker)


def capture_strict(
    value: Any,
    max_depth: int = DEFAULT_MAX_DEPTH,
    descriptors: Optional[DescriptorRegistry] = None,
) -> Any:
    """Like capture, but raise CaptureFailure when the value cannot be copied."""
    try:
        return _Capturer(max_depth, descriptors).copy(value, 1)
    except Exception as e:
        raise CaptureFailure(
            f"could not capture {type(value).__name__}: {e}", type(value).__name__
        ) from e


def capture(
    value: Any,
    max_depth: int = DEFAULT_MAX_DEPTH,
    descriptors: Optional[DescriptorRegistry] = None,
) -> Any:
    """Capture an isolated copy of ``value``.

    Never raises. Anything that cannot be copied degrades to its string form.

    Args:
        value: Any live value or object graph
        max_depth: Composite nesting depth kept; the root is depth 1
        descriptors: Extra providers for external references

    Returns:
        The captured graph
    """
    try:
        return _Capturer(max_depth, descriptors).copy(value, 1)
    except Exception as e:
        logger.debug(f"Capture of {type(value).__name__} failed: {e}")
        return safe_repr(value)
