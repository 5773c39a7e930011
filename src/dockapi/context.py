"""Build contexts for image builds.

A build context is the set of regular files under a directory, minus
whatever the directory's ``.dockerignore`` excludes. Ignore patterns are
applied in file order against the running set:

* blank lines and ``#`` comments are skipped,
* a plain pattern removes every file it matches,
* a ``!pattern`` adds matching files back.

A pattern that matches a directory matches every file beneath it.
Patterns support ``*``, ``?``, ``[...]``, ``**`` and ``{a,b}``. Leading
``/`` and ``./`` are ignored, and nothing outside the context root is
ever matched.
"""

import io
import os
import posixpath
import re
import tarfile
import tempfile
import time
from pathlib import Path
from typing import IO, Dict, Iterator, List, Mapping, Optional, Pattern, Set, Tuple, Union

from dockapi.errors import ArgumentError
from dockapi.logging import get_logger

logger = get_logger(__name__, component="context")

DOCKERIGNORE = ".dockerignore"


# ============================================================================
# Pattern handling
# ============================================================================


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` alternation, including nested groups.

    Example:
        >>> expand_braces("src/{a,b}.py")
        ['src/a.py', 'src/b.py']
    """
    depth = 0
    start = None
    for index, char in enumerate(pattern):
        if char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth:
            depth -= 1
            if depth == 0:
                head, body, tail = pattern[:start], pattern[start + 1:index], pattern[index + 1:]
                expanded = []
                for option in _split_options(body):
                    expanded.extend(expand_braces(head + option + tail))
                return expanded
    return [pattern]


def _split_options(body: str) -> List[str]:
    options, depth, current = [], 0, []
    for char in body:
        if char == "," and depth == 0:
            options.append("".join(current))
            current = []
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        current.append(char)
    options.append("".join(current))
    return options


def translate(pattern: str) -> Pattern[str]:
    """Compile one brace-free glob into a regex over relative posix paths.

    ``*`` and ``?`` never cross a ``/``; ``**`` does, and ``**/`` also
    matches zero directories. Dotfiles are matched like any other name.
    """
    parts: List[str] = []
    index, length = 0, len(pattern)
    while index < length:
        char = pattern[index]
        if pattern.startswith("**/", index):
            parts.append("(?:.*/)?")
            index += 3
            continue
        if pattern.startswith("**", index):
            parts.append(".*")
            index += 2
            continue
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        elif char == "[":
            end = pattern.find("]", index + 2)
            if end == -1:
                parts.append(re.escape(char))
            else:
                members = pattern[index + 1:end]
                if members.startswith("!"):
                    members = "^" + members[1:]
                parts.append("[" + members.replace("\\", "\\\\") + "]")
                index = end
        else:
            parts.append(re.escape(char))
        index += 1
    return re.compile("(?s:" + "".join(parts) + r")\Z")


def normalize_pattern(pattern: str) -> Optional[str]:
    """Return the pattern relative to the context root, or None if it escapes it."""
    pattern = pattern.lstrip("/")
    while pattern.startswith("./"):
        pattern = pattern[2:]
    pattern = posixpath.normpath(pattern) if pattern else ""
    if not pattern or pattern == "." or pattern == ".." or pattern.startswith("../"):
        return None
    return pattern


def read_ignore_file(path: Union[str, Path]) -> List[Tuple[bool, str]]:
    """Parse an ignore file into ``(negated, pattern)`` pairs in file order."""
    rules = []
    with open(path, encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            negated = line.startswith("!")
            if negated:
                line = line[1:].strip()
            if line:
                rules.append((negated, line))
    return rules


# ============================================================================
# File sets
# ============================================================================


def _walk(root: str) -> Tuple[List[str], List[str]]:
    """Relative posix paths of every regular file and directory under root."""
    files, dirs = [], []
    for current, dirnames, filenames in os.walk(root):
        rel_dir = os.path.relpath(current, root)
        for name in dirnames:
            dirs.append(_rel(rel_dir, name))
        for name in filenames:
            if os.path.isfile(os.path.join(current, name)):
                files.append(_rel(rel_dir, name))
    return files, dirs


def _rel(rel_dir: str, name: str) -> str:
    path = name if rel_dir == "." else os.path.join(rel_dir, name)
    return path.replace(os.sep, "/")


def _match(pattern: str, files: List[str], dirs: List[str]) -> Set[str]:
    matched: Set[str] = set()
    for alternative in expand_braces(pattern):
        normalized = normalize_pattern(alternative)
        if normalized is None:
            continue
        regex = translate(normalized)
        matched.update(path for path in files if regex.match(path))
        for directory in dirs:
            if regex.match(directory):
                prefix = directory + "/"
                matched.update(path for path in files if path.startswith(prefix))
    return matched


def context_files(directory: Union[str, Path], ignore_file: str = DOCKERIGNORE) -> Set[str]:
    """Return the absolute paths of the files in the build context.

    Args:
        directory: Context root.
        ignore_file: Name of the ignore file inside the root.

    Raises:
        ArgumentError: If ``directory`` is not a directory.
    """
    root = os.path.abspath(os.fspath(directory))
    if not os.path.isdir(root):
        raise ArgumentError(f"Build context is not a directory: {directory}")

    files, dirs = _walk(root)
    working = set(files)
    ignore_path = os.path.join(root, ignore_file)
    if os.path.isfile(ignore_path):
        for negated, pattern in read_ignore_file(ignore_path):
            matched = _match(pattern, files, dirs)
            if negated:
                working |= matched
            else:
                working -= matched

    logger.debug("context_resolved", directory=root, total=len(files), included=len(working))
    return {os.path.join(root, *path.split("/")) for path in working}


def iter_context(directory: Union[str, Path], ignore_file: str = DOCKERIGNORE) -> Iterator[Tuple[str, str]]:
    """Yield ``(absolute, relative)`` path pairs in sorted order."""
    root = os.path.abspath(os.fspath(directory))
    for path in sorted(context_files(root, ignore_file)):
        yield path, os.path.relpath(path, root).replace(os.sep, "/")


# ============================================================================
# Archives
# ============================================================================


def create_dir_tar(directory: Union[str, Path], output: Optional[IO[bytes]] = None) -> IO[bytes]:
    """Write the build context of ``directory`` as a tar archive.

    Entries carry their path relative to the root together with the
    original mode and modification time. Directory entries are not
    written.

    Args:
        directory: Context root.
        output: Binary file object to write to. A temporary file is used
            when omitted.

    Returns:
        The file object, rewound to the start.
    """
    if output is None:
        output = tempfile.TemporaryFile()
    count = 0
    with tarfile.open(fileobj=output, mode="w") as tar:
        for path, arcname in iter_context(directory):
            # Symlinked files are stored as the file they point at.
            with open(path, "rb") as f:
                tar.addfile(tar.gettarinfo(arcname=arcname, fileobj=f), f)
            count += 1
    output.seek(0)
    logger.debug("context_archived", directory=str(directory), files=count)
    return output


def create_tar(files: Mapping[str, Union[str, bytes]]) -> bytes:
    """Build an in-memory tar archive from ``{name: content}``.

    Example:
        >>> archive = create_tar({"Dockerfile": "FROM busybox\\n"})
    """
    buffer = io.BytesIO()
    now = time.time()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        for name, content in files.items():
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o640
            info.mtime = now
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def tar_members(archive: Union[bytes, IO[bytes]]) -> Dict[str, bytes]:
    """Read an archive back into ``{name: content}``; regular files only."""
    fileobj = io.BytesIO(archive) if isinstance(archive, bytes) else archive
    members = {}
    with tarfile.open(fileobj=fileobj, mode="r") as tar:
        for member in tar.getmembers():
            if member.isreg():
                extracted = tar.extractfile(member)
                members[member.name] = extracted.read() if extracted else b""
    return members
