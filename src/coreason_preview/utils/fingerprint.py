import hashlib
import json
from collections.abc import Mapping


def fingerprint_files(files: Mapping[str, str]) -> str:
    """Content hash of a flat file map.

    Independent of insertion order, so the same paths with the same contents always
    produce the same fingerprint.
    """
    digest = hashlib.sha256()
    for path in sorted(files):
        digest.update(json.dumps([path, files[path]], ensure_ascii=False).encode("utf-8"))
    return digest.hexdigest()


def code_hash(code: str) -> str:
    """SHA-256 of a code snippet, for audit lines."""
    return hashlib.sha256(code.encode("utf-8")).hexdigest()
