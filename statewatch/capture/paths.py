"""Path helpers over live (not captured) graphs."""

from collections.abc import Mapping, MutableMapping, MutableSequence, Sequence
from typing import Any, List, Optional, Sequence as SequenceType, Set

from ..utils.errors import InvalidPath
from .differ import diff
from .graph import NodeKind, capture, classify, composite_fields, safe_repr


def _child(container: Any, key: Any) -> Any:
    if isinstance(container, Mapping):
        return container[key]
    if isinstance(container, Sequence) and not isinstance(container, (str, bytes)):
        return container[int(key)]
    if classify(container) is NodeKind.COMPOSITE:
        return getattr(container, str(key))
    raise TypeError(f"{type(container).__name__} is not a container")


def _assign(container: Any, key: Any, value: Any) -> None:
    if isinstance(container, MutableMapping):
        container[key] = value
    elif isinstance(container, MutableSequence):
        index = int(key)
        if index == len(container):
            container.append(value)
        else:
            container[index] = value
    elif classify(container) is NodeKind.COMPOSITE and not isinstance(
        container, (Mapping, Sequence)
    ):
        setattr(container, str(key), value)
    else:
        raise TypeError(f"{type(container).__name__} is not assignable")


def inject(target: Any, path: SequenceType[Any], value: Any, strict: bool = False) -> bool:
    """Set ``value`` at ``path`` inside ``target``.

    Example: ``inject(state, ["player", "stats", 0], 99)``.

    Args:
        target: Root of a live graph
        path: Keys, indexes or attribute names from the root
        value: Value to store at the last segment
        strict: Raise InvalidPath instead of returning False

    Returns:
        True if the value was stored
    """
    try:
        if isinstance(path, (str, bytes)) or not isinstance(path, Sequence) or not path:
            raise InvalidPath(
                "path must be a non-empty sequence of keys",
                path if isinstance(path, Sequence) else None,
            )

        current = target
        for depth, key in enumerate(path[:-1]):
            try:
                current = _child(current, key)
            except (KeyError, IndexError, AttributeError, TypeError, ValueError) as e:
                raise InvalidPath(
                    f"path does not resolve at {safe_repr(key)!r}: {e}", path[: depth + 1]
                ) from e

        try:
            _assign(current, path[-1], value)
        except (IndexError, AttributeError, TypeError, ValueError) as e:
            raise InvalidPath(f"cannot assign {safe_repr(path[-1])!r}: {e}", path) from e
    except InvalidPath:
        if strict:
            raise
        return False
    return True


def find_value(target: Any, value: Any, root: str = "root") -> List[str]:
    """Dot paths of every place ``value`` occurs inside ``target``."""
    results: List[str] = []
    on_path: Set[int] = set()

    def search(node: Any, path: str) -> None:
        if id(node) in on_path:
            return
        on_path.add(id(node))
        try:
            for key, child in composite_fields(node):
                child_path = f"{path}.{safe_repr(key)}"
                try:
                    matched = child == value
                except Exception:
                    matched = False
                if matched is True:
                    results.append(child_path)
                elif classify(child) is NodeKind.COMPOSITE:
                    search(child, child_path)
        except Exception:
            return
        finally:
            on_path.discard(id(node))

    if classify(target) is NodeKind.COMPOSITE:
        search(target, root)
    return results


def deep_equal(a: Any, b: Any, max_depth: Optional[int] = None) -> bool:
    """Structural equality of two live graphs, compared by their captures."""
    if max_depth is None:
        return not diff(capture(a), capture(b))
    return not diff(capture(a, max_depth), capture(b, max_depth))
