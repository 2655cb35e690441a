import json

from coreason_preview.models.manifest import Manifest
from coreason_preview.project.manifest import (
    INDEX_HTML,
    PLACEHOLDER_APP,
    enforce_manifest,
    inject_bootstrap,
    parse_manifest,
    sanitize_component_source,
    sanitize_components,
    synthesize_manifest,
)
from coreason_preview.project.templates import BUNDLER_BUILD_SCRIPT, BUNDLER_DEV_SCRIPT, Template


def test_missing_manifest_yields_template_default() -> None:
    manifest = json.loads(synthesize_manifest(Template.EXPRESS))
    assert manifest["scripts"] == {"start": "node index.js"}
    assert set(manifest["dependencies"]) == {"express", "cors"}
    assert "devDependencies" not in manifest


def test_ssr_dev_script_is_forced_to_bundler() -> None:
    existing = json.dumps(
        {
            "name": "my-next-app",
            "scripts": {"dev": "next dev", "build": "next build", "start": "next start", "lint": "eslint ."},
            "dependencies": {"next": "14.1.0", "react": "^18.2.0", "zod": "^3.22.0"},
            "devDependencies": {"@next/eslint-plugin-next": "14.1.0"},
        }
    )

    manifest = json.loads(synthesize_manifest(Template.NEXTJS, existing))

    assert manifest["scripts"]["dev"] == BUNDLER_DEV_SCRIPT
    assert manifest["scripts"]["build"] == BUNDLER_BUILD_SCRIPT
    assert "start" not in manifest["scripts"]
    assert manifest["scripts"]["lint"] == "eslint ."
    all_deps = {**manifest["dependencies"], **manifest.get("devDependencies", {})}
    assert "next" not in all_deps
    assert "@next/eslint-plugin-next" not in all_deps
    assert "vite" in all_deps


def test_merge_never_overwrites_caller_values() -> None:
    existing = json.dumps({"name": "mine", "dependencies": {"react": "^17.0.2"}, "private": True})

    manifest = json.loads(synthesize_manifest(Template.VITE, existing))

    assert manifest["name"] == "mine"
    assert manifest["dependencies"]["react"] == "^17.0.2"
    assert manifest["dependencies"]["react-dom"] == "^18.3.1"
    assert manifest["devDependencies"]["@vitejs/plugin-react"] == "^4.2.0"
    assert manifest["private"] is True
    assert manifest["type"] == "module"


def test_incompatible_drivers_are_removed() -> None:
    existing = json.dumps({"dependencies": {"express": "4", "better-sqlite3": "9", "pg-native": "3"}})
    manifest = json.loads(synthesize_manifest(Template.EXPRESS, existing))
    assert set(manifest["dependencies"]) == {"express", "cors"}


def test_unparseable_manifest_is_replaced() -> None:
    assert parse_manifest("{oops") is None
    assert parse_manifest("[1, 2]") is None
    assert parse_manifest('{"scripts": "not a map"}') is None
    manifest = json.loads(synthesize_manifest(Template.VITE, "{oops"))
    assert manifest["name"] == "preview-vite-app"


def test_enforce_manifest_always_replaces_for_bundler() -> None:
    files = {"package.json": json.dumps({"scripts": {"dev": "react-scripts start"}})}
    enforced = enforce_manifest(files, Template.VITE)
    assert json.loads(enforced["package.json"])["scripts"]["dev"] == BUNDLER_DEV_SCRIPT


def test_enforce_manifest_keeps_server_manifest() -> None:
    raw = json.dumps({"scripts": {"start": "node server.js"}, "dependencies": {"express": "4"}})
    assert enforce_manifest({"package.json": raw}, Template.EXPRESS)["package.json"] == raw
    generated = enforce_manifest({"index.js": ""}, Template.EXPRESS)
    assert "package.json" in generated


def test_inject_bootstrap_synthesizes_app_from_components() -> None:
    files = {"Header.jsx": "h", "Footer.tsx": "f", "components/Deep.jsx": "d", "main-helper.jsx": "x"}

    result = inject_bootstrap(files, Template.VITE)

    app = result["App.jsx"]
    assert "import Component1 from './Footer.tsx';" in app
    assert "import Component2 from './Header.jsx';" in app
    assert "Deep" not in app
    assert "main-helper" not in app
    assert "import App from './App.jsx';" in result["main.jsx"]
    assert '<script type="module" src="/main.jsx"></script>' in result["index.html"]
    assert "@vitejs/plugin-react" in result["vite.config.js"]


def test_inject_bootstrap_placeholder_and_existing_files() -> None:
    result = inject_bootstrap({}, Template.NEXTJS)
    assert result["App.jsx"] == PLACEHOLDER_APP

    existing = {"src/App.tsx": "app", "src/main.tsx": "entry", "index.html": "<html/>", "vite.config.ts": "cfg"}
    assert inject_bootstrap(existing, Template.VITE) == existing


def test_inject_bootstrap_uses_existing_entry() -> None:
    result = inject_bootstrap({"App.jsx": "app", "src/main.tsx": "entry"}, Template.VITE)
    assert "main.jsx" not in result
    assert result["index.html"] == INDEX_HTML.format(entry="src/main.tsx")


def test_inject_bootstrap_ignores_non_bundler_templates() -> None:
    files = {"index.js": "server"}
    assert inject_bootstrap(files, Template.EXPRESS) == files
    assert inject_bootstrap(files, Template.STATIC) == files


def test_sanitize_component_source() -> None:
    fenced = "```jsx\nfunction Card() {\n  return <div>card</div>;\n}\n```"
    cleaned = sanitize_component_source(fenced)

    assert "```" not in cleaned
    assert cleaned.startswith("import React from 'react';")
    assert cleaned.endswith("export default Card;")


def test_sanitize_component_source_ignores_uppercase_constants() -> None:
    code = "const API_URL = 'https://x';\n\nfunction Card() {\n  return <div>{API_URL}</div>;\n}"
    assert sanitize_component_source(code).endswith("export default Card;")

    arrow = "const MAX_ITEMS = 3;\nconst ProductList = ({ items }) => <ul>{items.length}</ul>;"
    assert sanitize_component_source(arrow).endswith("export default ProductList;")

    only_constants = "const API_URL = 'https://x';\nconst Theme = { dark: true };"
    assert "export default" not in sanitize_component_source(only_constants)


def test_sanitize_component_source_leaves_good_code() -> None:
    good = "import React from 'react';\nexport default function App() { return <p/>; }"
    assert sanitize_component_source(good) == good


def test_sanitize_components_skips_entry_files() -> None:
    files = {"main.jsx": "entry", "Card.jsx": "const Card = () => <div/>;", "util.js": "x"}
    result = sanitize_components(files)
    assert result["main.jsx"] == "entry"
    assert result["util.js"] == "x"
    assert "export default Card;" in result["Card.jsx"]


def test_manifest_model_preserves_extra_keys() -> None:
    manifest = Manifest.model_validate({"name": "x", "engines": {"node": ">=18"}})
    assert manifest.dump()["engines"] == {"node": ">=18"}
