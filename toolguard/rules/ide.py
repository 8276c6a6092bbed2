"""
Editor rules.

Rules:
    structure.editorconfig  .editorconfig present
    ide.vscode_settings     .vscode/settings.json present
    ide.vscode_extensions   .vscode/extensions.json present
"""

from ..core.models import Category, Rule, Severity
from .base import config_file_probe, dump_json, write_template_fix


EDITORCONFIG_TEMPLATE = """root = true

[*]
charset = utf-8
end_of_line = lf
insert_final_newline = true
trim_trailing_whitespace = true
indent_style = space
indent_size = 2

[*.md]
trim_trailing_whitespace = false

[*.{yml,yaml}]
indent_size = 2
"""

VSCODE_SETTINGS = {
    "editor.formatOnSave": True,
    "editor.codeActionsOnSave": {
        "source.fixAll.eslint": "explicit",
        "source.organizeImports": "explicit",
    },
    "editor.defaultFormatter": "esbenp.prettier-vscode",
    "files.autoSave": "onFocusChange",
    "typescript.preferences.importModuleSpecifier": "relative",
}

VSCODE_EXTENSIONS = {
    "recommendations": [
        "esbenp.prettier-vscode",
        "dbaeumer.vscode-eslint",
        "bradlc.vscode-tailwindcss",
        "ms-playwright.playwright",
        "vitest.explorer",
    ]
}


RULES = [
    Rule(
        id='structure.editorconfig',
        category=Category.STRUCTURE,
        severity=Severity.INFORMATIONAL,
        description="EditorConfig file present",
        probe=config_file_probe(('.editorconfig',)),
        fix=write_template_fix('.editorconfig', EDITORCONFIG_TEMPLATE),
        targets=('.editorconfig',),
        remediation="Create .editorconfig (see https://editorconfig.org).",
    ),
    Rule(
        id='ide.vscode_settings',
        category=Category.IDE,
        severity=Severity.INFORMATIONAL,
        description="VS Code workspace settings present",
        probe=config_file_probe(('.vscode/settings.json',)),
        fix=write_template_fix('.vscode/settings.json', dump_json(VSCODE_SETTINGS)),
        targets=('.vscode', '.vscode/settings.json'),
        remediation="Create .vscode/settings.json enabling format on save.",
    ),
    Rule(
        id='ide.vscode_extensions',
        category=Category.IDE,
        severity=Severity.INFORMATIONAL,
        description="VS Code extension recommendations present",
        probe=config_file_probe(('.vscode/extensions.json',)),
        fix=write_template_fix('.vscode/extensions.json', dump_json(VSCODE_EXTENSIONS)),
        targets=('.vscode', '.vscode/extensions.json'),
        remediation="Create .vscode/extensions.json recommending ESLint and Prettier.",
    ),
]
