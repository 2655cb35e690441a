import json
from collections.abc import Mapping

from loguru import logger

from coreason_preview.project.templates import DEFAULT_TEMPLATE, Template

MANIFEST_PATHS = ("package.json", "/package.json")
STATIC_ENTRY_PATHS = ("index.html", "/index.html")


def find_manifest(files: Mapping[str, str]) -> str | None:
    """Returns the raw manifest text of a file map, if it has one."""
    for path in MANIFEST_PATHS:
        if path in files:
            return files[path]
    return None


def detect_template(files: Mapping[str, str]) -> Template:
    """Classify a file map into one of the known project templates.

    Signature dependencies are checked in priority order: the SSR framework, then the
    bundler, then the server framework. Without a manifest a static markup entry selects
    the static template. Never raises; anything unrecognised maps to the default.

    Args:
        files: Flat ``{path: content}`` map.

    Returns:
        Template: The detected project template.
    """
    raw = find_manifest(files)
    if raw is None:
        if any(path in files for path in STATIC_ENTRY_PATHS):
            return Template.STATIC
        return DEFAULT_TEMPLATE

    try:
        manifest = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("Unparseable package.json, using default template")
        return DEFAULT_TEMPLATE
    if not isinstance(manifest, dict):
        return DEFAULT_TEMPLATE

    deps: dict[str, object] = {}
    for key in ("dependencies", "devDependencies"):
        section = manifest.get(key)
        if isinstance(section, dict):
            deps.update(section)

    if "next" in deps:
        return Template.NEXTJS
    if "vite" in deps:
        return Template.VITE
    # Create React App does not run in the sandbox; it is converted to the bundler.
    if "react-scripts" in deps:
        logger.info("Detected Create React App, converting to vite")
        return Template.VITE
    if "react" in deps and "express" not in deps:
        return Template.VITE
    if "express" in deps:
        return Template.EXPRESS

    return DEFAULT_TEMPLATE
