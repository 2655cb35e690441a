# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_preview

"""Project templates the container runtime knows how to run."""

from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class Template(str, Enum):
    VITE = "vite"  # bundler-based SPA
    NEXTJS = "nextjs"  # server-rendered framework
    EXPRESS = "express"  # minimal server framework
    STATIC = "static"  # plain markup


DEFAULT_TEMPLATE = Template.EXPRESS

# The sandbox supports one dev-server family; everything that needs a dev server runs on it.
BUNDLER_DEV_SCRIPT = "vite --host"
BUNDLER_BUILD_SCRIPT = "vite build"

MANIFEST_TEMPLATES: Mapping[Template, Mapping[str, Any]] = MappingProxyType(
    {
        Template.EXPRESS: {
            "name": "preview-app",
            "type": "module",
            "scripts": {"start": "node index.js"},
            "dependencies": {"express": "latest", "cors": "latest"},
        },
        Template.VITE: {
            "name": "preview-vite-app",
            "type": "module",
            "scripts": {"dev": BUNDLER_DEV_SCRIPT, "build": BUNDLER_BUILD_SCRIPT},
            "dependencies": {
                "react": "^18.3.1",
                "react-dom": "^18.3.1",
                "lucide-react": "latest",
                "framer-motion": "latest",
            },
            "devDependencies": {
                "vite": "^5.0.0",
                "@vitejs/plugin-react": "^4.2.0",
                "autoprefixer": "latest",
                "postcss": "latest",
                "tailwindcss": "latest",
            },
        },
        Template.STATIC: {
            "name": "preview-static",
            "scripts": {"start": "serve ."},
            "dependencies": {"serve": "latest"},
        },
    }
)

START_COMMANDS: Mapping[Template, tuple[str, list[str]]] = MappingProxyType(
    {
        Template.VITE: ("npm", ["run", "dev"]),
        Template.STATIC: ("npx", ["serve", "."]),
        Template.EXPRESS: ("npm", ["start"]),
    }
)

INSTALL_COMMAND: tuple[str, list[str]] = ("npm", ["install", "--legacy-peer-deps", "--prefer-offline"])


def runnable_template(template: Template) -> Template:
    """The template the sandbox actually runs.

    Server-rendered frameworks are never run natively; they are served by the bundler.
    """
    if template is Template.NEXTJS:
        return Template.VITE
    return template


def start_command(template: Template) -> tuple[str, list[str]]:
    cmd, args = START_COMMANDS[runnable_template(template)]
    return cmd, list(args)
