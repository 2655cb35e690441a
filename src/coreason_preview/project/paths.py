import re
from collections.abc import Mapping
from typing import Any

from loguru import logger

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_DUPLICATE_SLASHES = re.compile(r"/+")
_INVALID_SEGMENT_CHARS = re.compile(r'[<>:"|?*]')

FileTree = dict[str, Any]


def sanitize_path(path: str) -> str:
    """Normalize a virtual file path for mounting.

    Returns a clean relative path, or an empty string when nothing usable remains
    (the caller drops such files).
    """
    sanitized = path.strip()
    sanitized = sanitized.replace("\\", "/")
    sanitized = sanitized.lstrip("/")
    sanitized = _CONTROL_CHARS.sub("", sanitized)
    sanitized = _DUPLICATE_SLASHES.sub("/", sanitized)

    segments: list[str] = []
    for segment in sanitized.split("/"):
        cleaned = _INVALID_SEGMENT_CHARS.sub("", segment).strip()
        if cleaned in ("", "."):
            continue
        if cleaned == "..":
            # Resolved lexically, never above the project root
            if segments:
                segments.pop()
            continue
        segments.append(cleaned)
    return "/".join(segments)


def sanitize_files(files: Mapping[str, str]) -> dict[str, str]:
    """Sanitizes every path of a file map, dropping files with unusable paths.

    When two raw paths sanitize to the same path, the later one wins.
    """
    result: dict[str, str] = {}
    for raw_path, content in files.items():
        path = sanitize_path(raw_path)
        if not path:
            logger.warning(f"Dropping file with invalid path: {raw_path!r}")
            continue
        result[path] = content
    return result


def build_file_tree(files: Mapping[str, str]) -> FileTree:
    """Build the nested mount tree from a flat file map.

    Directories are ``{"directory": {...}}`` nodes and files are
    ``{"file": {"contents": ...}}`` nodes.
    """
    tree: FileTree = {}
    for raw_path, content in files.items():
        path = sanitize_path(raw_path)
        if not path:
            continue

        parts = path.split("/")
        current = tree
        for directory in parts[:-1]:
            node = current.get(directory)
            if node is None or "directory" not in node:
                node = {"directory": {}}
                current[directory] = node
            current = node["directory"]
        current[parts[-1]] = {"file": {"contents": content}}
    return tree


def iter_tree_files(tree: FileTree, prefix: str = "") -> list[tuple[str, str]]:
    """Flattens a mount tree back into ``(path, contents)`` pairs."""
    entries: list[tuple[str, str]] = []
    for name, node in tree.items():
        path = f"{prefix}{name}"
        if "directory" in node:
            entries.extend(iter_tree_files(node["directory"], f"{path}/"))
        else:
            entries.append((path, node["file"]["contents"]))
    return entries
