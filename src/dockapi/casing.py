"""Key casing transforms between snake_case and camelCase.

The engine speaks camelCase (``MemorySwap``, ``hostConfig`` in query
strings) while Python callers naturally write snake_case. These helpers
convert the *top-level* keys of one mapping per call; nested mappings are
left as they are. Callers that need deeper conversion re-invoke the
transform on the nested values they care about.

All ``*_keys`` functions return a new dict and never modify their input.
"""

import re
from typing import Any, Dict, Literal, Mapping, Optional

CamelMode = Literal["lower", "upper"]

# Lowercase words joined by single underscores: ``memory_swap``, ``cmd``.
SNAKE_KEY = re.compile(r"^[a-z][a-z0-9]*(?:_[a-z0-9]+)*$")
# Letters and digits only, no separators: ``memorySwap``, ``HostConfig``.
CAMEL_KEY = re.compile(r"^[A-Za-z][A-Za-z0-9]*$")

_ACRONYM_BOUNDARY = re.compile(r"([A-Z\d]+)([A-Z][a-z])")
_WORD_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")


def camelize(word: Optional[str], mode: CamelMode = "upper") -> Optional[str]:
    """Convert ``word`` to camel case.

    Args:
        word: A snake_case (or already camel-cased) word.
        mode: ``"upper"`` produces ``AttachStdin``, ``"lower"`` produces
            ``attachStdin``.

    Returns:
        The camel-cased word; ``None`` and ``""`` are returned unchanged.
    """
    if not word:
        return word
    head, *rest = word.split("_")
    head = head[:1].upper() + head[1:] if mode == "upper" else head[:1].lower() + head[1:]
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def snakeify(word: Optional[str]) -> Optional[str]:
    """Convert a camel-cased ``word`` to snake_case.

    >>> snakeify("SomeName")
    'some_name'
    >>> snakeify("HostIP")
    'host_ip'
    """
    if not word:
        return word
    word = _ACRONYM_BOUNDARY.sub(r"\1_\2", word)
    word = _WORD_BOUNDARY.sub(r"\1_\2", word)
    return word.replace("-", "_").lower()


def camelize_keys(mapping: Mapping[Any, Any], mode: CamelMode = "lower") -> Dict[Any, Any]:
    """Camelize every snake_case string key of ``mapping``.

    Keys that are not snake_case (``"Image"``, ``"It Works"``, non-strings)
    are carried over untouched, as are all values.
    """
    return {
        camelize(key, mode) if isinstance(key, str) and SNAKE_KEY.match(key) else key: value
        for key, value in mapping.items()
    }


def snakeify_keys(mapping: Mapping[Any, Any]) -> Dict[Any, Any]:
    """Snake-case every camelCase string key of ``mapping``."""
    return {
        snakeify(key) if isinstance(key, str) and CAMEL_KEY.match(key) else key: value
        for key, value in mapping.items()
    }
