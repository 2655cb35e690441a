# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_preview

"""Manifest synthesis and bootstrap-file injection for generated projects."""

import copy
import json
import posixpath
import re
from collections.abc import Mapping

from loguru import logger
from pydantic import ValidationError

from coreason_preview.models.manifest import Manifest
from coreason_preview.project.templates import (
    BUNDLER_BUILD_SCRIPT,
    BUNDLER_DEV_SCRIPT,
    MANIFEST_TEMPLATES,
    Template,
    runnable_template,
)

# Server-rendered frameworks and native drivers cannot run in the container runtime.
INCOMPATIBLE_DEPENDENCIES = frozenset(
    {
        "next",
        "nuxt",
        "gatsby",
        "react-scripts",
        "sqlite3",
        "better-sqlite3",
        "pg-native",
        "oracledb",
        "libsql",
    }
)
INCOMPATIBLE_DEPENDENCY_PREFIXES = ("@remix-run/", "@sveltejs/kit", "@next/")
SSR_COMMANDS = frozenset({"next", "nuxt", "nuxi", "gatsby", "react-scripts", "remix"})

APP_COMPONENT_PATHS = ("App.jsx", "App.tsx", "app.jsx", "app.tsx", "src/App.jsx", "src/App.tsx")
ENTRY_PATHS = ("main.jsx", "main.tsx", "src/main.jsx", "src/main.tsx")
VITE_CONFIG_PATHS = ("vite.config.js", "vite.config.ts", "vite.config.mjs")

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>Preview</title>
</head>
<body>
    <div id="root"></div>
    <script type="module" src="/{entry}"></script>
</body>
</html>
"""

MAIN_JSX = """import React from 'react';
import ReactDOM from 'react-dom/client';
import App from '{app_import}';

ReactDOM.createRoot(document.getElementById('root')).render(
    <React.StrictMode>
        <App />
    </React.StrictMode>
);
"""

VITE_CONFIG = """import { defineConfig } from 'vite';
import react from '@vitejs/plugin-react';

export default defineConfig({
    plugins: [react()],
    server: {
        host: true,
        port: 5173
    }
});
"""

PLACEHOLDER_APP = """export default function App() {
    return (
        <div style={{ padding: '20px', fontFamily: 'sans-serif' }}>
            <h1>Preview</h1>
            <p>Your code is loading...</p>
        </div>
    );
}
"""

_FENCE = re.compile(r"^```[\w+-]*[ \t]*\n?(.*?)\n?```\s*$", re.DOTALL)
_COMPONENT_DECL = re.compile(r"\b(?:function|class)\s+([A-Z]\w*)")
# A capitalized const only counts when it holds a component; ALL_CAPS names are plain constants.
_COMPONENT_CONST = re.compile(
    r"\bconst\s+([A-Z]\w*[a-z]\w*)\s*(?::[^=]+)?=\s*"
    r"(?:(?:async\s+)?(?:\([^)]*\)|\w+)\s*=>|function\b|<|(?:React\.)?(?:memo|forwardRef)\()"
)


def _is_incompatible(name: str) -> bool:
    return name in INCOMPATIBLE_DEPENDENCIES or name.startswith(INCOMPATIBLE_DEPENDENCY_PREFIXES)


def parse_manifest(raw: str | None) -> Manifest | None:
    """Parses an untrusted manifest. Returns None on any parse or validation failure."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"Ignoring unparseable package.json: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring package.json that is not a JSON object")
        return None
    try:
        return Manifest.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed package.json: {e.error_count()} validation errors")
        return None


def _merge_missing(target: dict[str, str], defaults: Mapping[str, str], section: str) -> None:
    for key, value in defaults.items():
        if not target.get(key):
            target[key] = value
            logger.debug(f"Injected missing {section} entry: {key}")


def synthesize_manifest(template: Template, existing: str | None = None) -> str:
    """Produce the manifest the runtime will install from.

    Without an existing manifest the template default is returned. Otherwise missing
    scripts and dependencies are merged in without overwriting the caller's values.
    In both cases the sandbox policy is applied afterwards: bundler-run templates get
    the bundler's dev and build scripts forced, and incompatible dependencies are removed.

    Args:
        template: The detected project template.
        existing: Raw ``package.json`` text, if the project has one.

    Returns:
        str: The manifest as indented JSON.
    """
    target = runnable_template(template)
    defaults = copy.deepcopy(dict(MANIFEST_TEMPLATES[target]))

    manifest = parse_manifest(existing)
    if manifest is None:
        manifest = Manifest.model_validate(defaults)
    else:
        if not manifest.name:
            manifest.name = defaults.get("name")
        if not manifest.type and defaults.get("type"):
            manifest.type = defaults["type"]
        _merge_missing(manifest.scripts, defaults.get("scripts", {}), "script")
        _merge_missing(manifest.dependencies, defaults.get("dependencies", {}), "dependency")
        _merge_missing(manifest.dev_dependencies, defaults.get("devDependencies", {}), "devDependency")

    if target is Template.VITE:
        for name, command in list(manifest.scripts.items()):
            if command.split(" ", 1)[0] in SSR_COMMANDS:
                del manifest.scripts[name]
        manifest.scripts["dev"] = BUNDLER_DEV_SCRIPT
        manifest.scripts["build"] = BUNDLER_BUILD_SCRIPT

    for section in (manifest.dependencies, manifest.dev_dependencies):
        for name in [dep for dep in section if _is_incompatible(dep)]:
            logger.info(f"Removing sandbox-incompatible dependency: {name}")
            del section[name]

    return json.dumps(manifest.dump(), indent=2)


def enforce_manifest(files: Mapping[str, str], template: Template) -> dict[str, str]:
    """Returns ``files`` with the manifest the runtime should install.

    Bundler-run projects always get the synthesized manifest because several upstream
    generators may each have emitted their own. Other projects keep theirs and only get
    one generated when it is missing.
    """
    result = dict(files)
    existing = result.get("package.json")
    if runnable_template(template) is Template.VITE:
        result["package.json"] = synthesize_manifest(template, existing)
    elif existing is None:
        result["package.json"] = synthesize_manifest(template)
    return result


def _first_present(files: Mapping[str, str], candidates: tuple[str, ...]) -> str | None:
    for path in candidates:
        if path in files:
            return path
    return None


def _top_level_components(files: Mapping[str, str]) -> list[str]:
    components = []
    for path in files:
        if "/" in path or not path.endswith((".jsx", ".tsx")):
            continue
        stem = path.rsplit(".", 1)[0].lower()
        if "main" in stem or "index" in stem:
            continue
        components.append(path)
    return sorted(components)


def _synthesize_app(components: list[str]) -> str:
    if not components:
        return PLACEHOLDER_APP
    imports = "\n".join(f"import Component{i} from './{path}';" for i, path in enumerate(components, start=1))
    rendered = "\n                ".join(f"<Component{i} />" for i in range(1, len(components) + 1))
    return f"""{imports}

export default function App() {{
    return (
        <div>
            <div style={{{{ display: 'flex', flexDirection: 'column', gap: '1rem' }}}}>
                {rendered}
            </div>
        </div>
    );
}}
"""


def inject_bootstrap(files: Mapping[str, str], template: Template) -> dict[str, str]:
    """Adds the files the bundler needs to serve the project, when they are missing.

    Only bundler-run templates are touched: an HTML shell, a module entry point, the
    bundler config and, when no root component exists, an ``App.jsx`` rendering every
    top-level component file as a best-effort entry.
    """
    result = dict(files)
    if runnable_template(template) is not Template.VITE:
        return result

    app_path = _first_present(result, APP_COMPONENT_PATHS)
    if app_path is None:
        components = _top_level_components(result)
        result["App.jsx"] = _synthesize_app(components)
        app_path = "App.jsx"
        logger.info(f"Synthesized App.jsx rendering {len(components)} components")

    entry = _first_present(result, ENTRY_PATHS)
    if entry is None:
        entry = "main.jsx"
        result[entry] = MAIN_JSX.format(app_import=f"./{app_path}")

    if "index.html" not in result:
        result["index.html"] = INDEX_HTML.format(entry=entry)

    if _first_present(result, VITE_CONFIG_PATHS) is None:
        result["vite.config.js"] = VITE_CONFIG

    return result


def sanitize_component_source(code: str) -> str:
    """Repairs common defects of generated React component source.

    Strips a surrounding markdown fence, adds a default export when missing and makes
    sure React is in scope.
    """
    stripped = code.strip()
    match = _FENCE.match(stripped)
    if match:
        stripped = match.group(1).strip()

    if "export default" not in stripped:
        declared = _COMPONENT_DECL.search(stripped) or _COMPONENT_CONST.search(stripped)
        if declared:
            stripped += f"\n\nexport default {declared.group(1)};"
        elif "return" in stripped and "<" in stripped:
            stripped = f"export default function App() {{\n{stripped}\n}}"

    if "import React" not in stripped and "import * as React" not in stripped:
        stripped = f"import React from 'react';\n{stripped}"

    return stripped


def sanitize_components(files: Mapping[str, str]) -> dict[str, str]:
    """Applies ``sanitize_component_source`` to component files, leaving entry files alone."""
    result = dict(files)
    for path, content in files.items():
        name = posixpath.basename(path)
        if not name.endswith((".jsx", ".tsx")) or name.split(".", 1)[0] in ("main", "index"):
            continue
        result[path] = sanitize_component_source(content)
    return result
