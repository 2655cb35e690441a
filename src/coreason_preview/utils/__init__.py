from .fingerprint import code_hash, fingerprint_files

__all__ = ["code_hash", "fingerprint_files"]
