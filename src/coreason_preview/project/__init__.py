"""
Project preparation: template detection, manifest synthesis and path sanitization.
"""

from .detector import detect_template
from .manifest import enforce_manifest, inject_bootstrap, sanitize_component_source, synthesize_manifest
from .paths import build_file_tree, sanitize_path
from .templates import Template

__all__ = [
    "Template",
    "build_file_tree",
    "detect_template",
    "enforce_manifest",
    "inject_bootstrap",
    "sanitize_component_source",
    "sanitize_path",
    "synthesize_manifest",
]
