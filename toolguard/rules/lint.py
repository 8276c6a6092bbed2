"""
Linting and formatting rules for JavaScript/TypeScript projects.

Rules:
    lint.eslint_config       ESLint config present
    lint.prettier_config     Prettier config present
    lint.lint_staged         lint-staged map configured
    lint.commitlint_config   commitlint config present
    lint.package_scripts     lint/format/test scripts present
    lint.dev_dependencies    tooling declared in devDependencies (fix: npm install)
    lint.eslint_runs         local eslint binary answers --version (detect-only)
    lint.tsconfig            tsconfig.json present (TypeScript projects)
"""

from ..core.context import ProjectContext
from ..core.errors import ToolError
from ..core.models import Category, Rule, Severity
from ..core.tools import require_success
from .base import (
    add_json_defaults_fix,
    config_file_probe,
    dump_json,
    is_node_project,
    is_typescript_project,
    json_keys_probe,
    load_manifest,
    write_template_fix,
)


ESLINT_CONFIGS = (
    '.eslintrc.js', '.eslintrc.cjs', '.eslintrc.json', '.eslintrc.yml',
    '.eslintrc.yaml', 'eslint.config.js', 'eslint.config.mjs', 'eslint.config.cjs',
)
PRETTIER_CONFIGS = (
    '.prettierrc', '.prettierrc.json', '.prettierrc.yml', '.prettierrc.yaml',
    '.prettierrc.js', '.prettierrc.cjs', 'prettier.config.js', 'prettier.config.cjs',
)
LINT_STAGED_CONFIGS = (
    '.lintstagedrc', '.lintstagedrc.json', '.lintstagedrc.yml', '.lintstagedrc.yaml',
    '.lintstagedrc.js', 'lint-staged.config.js',
)
COMMITLINT_CONFIGS = (
    'commitlint.config.js', 'commitlint.config.cjs', '.commitlintrc', '.commitlintrc.json',
    '.commitlintrc.yml', '.commitlintrc.yaml', '.commitlintrc.js',
)

ESLINT_TEMPLATE = """module.exports = {
  env: {
    browser: true,
    es2021: true,
    node: true,
  },
  extends: ['eslint:recommended'],
  parserOptions: {
    ecmaVersion: 'latest',
    sourceType: 'module',
  },
  rules: {},
};
"""

PRETTIER_SETTINGS = {
    "semi": True,
    "trailingComma": "es5",
    "singleQuote": True,
    "printWidth": 80,
    "tabWidth": 2,
}

LINT_STAGED_MAP = {
    "*.{js,jsx,ts,tsx}": ["eslint --fix", "prettier --write"],
    "*.php": ["./vendor/bin/pint"],
    "*.{json,md,yml,yaml}": ["prettier --write"],
}

COMMITLINT_TEMPLATE = """module.exports = {
  extends: ['@commitlint/config-conventional'],
  rules: {
    'type-enum': [
      2,
      'always',
      [
        'build',
        'chore',
        'ci',
        'docs',
        'feat',
        'fix',
        'perf',
        'refactor',
        'revert',
        'style',
        'test'
      ]
    ]
  }
};
"""

PACKAGE_SCRIPTS = {
    "lint": "eslint . --ext js,jsx,ts,tsx",
    "format": "prettier --write .",
    "test": 'echo "Add your test command here"',
}

DEV_DEPENDENCIES = (
    'husky',
    'lint-staged',
    'eslint',
    'prettier',
    '@commitlint/cli',
    '@commitlint/config-conventional',
)

ESLINT_BIN = 'node_modules/.bin/eslint'

TSCONFIG = {
    "compilerOptions": {
        "target": "ES2020",
        "lib": ["ES2020", "DOM", "DOM.Iterable"],
        "module": "ESNext",
        "skipLibCheck": True,
        "moduleResolution": "bundler",
        "allowImportingTsExtensions": True,
        "resolveJsonModule": True,
        "isolatedModules": True,
        "noEmit": True,
        "jsx": "react-jsx",
        "strict": True,
        "noUnusedLocals": True,
        "noUnusedParameters": True,
        "noFallthroughCasesInSwitch": True,
    },
    "include": ["src"],
}


def probe_lint_staged(ctx: ProjectContext):
    manifest = load_manifest(ctx, 'package.json')
    configured = manifest.get('lint-staged')
    if isinstance(configured, dict) and configured:
        return True, f"lint-staged configured for {', '.join(configured)}"
    for name in LINT_STAGED_CONFIGS:
        if ctx.exists(name):
            return True, f"{name} present"
    return False, "no lint-staged configuration in package.json or rc file"


def fix_lint_staged(ctx: ProjectContext):
    if any(ctx.exists(name) for name in LINT_STAGED_CONFIGS):
        return []
    return add_json_defaults_fix('package.json', None, {'lint-staged': LINT_STAGED_MAP})(ctx)


def declared_packages(ctx: ProjectContext):
    manifest = load_manifest(ctx, 'package.json')
    names = set()
    for section in ('dependencies', 'devDependencies'):
        deps = manifest.get(section)
        if isinstance(deps, dict):
            names.update(deps)
    return names


def missing_dev_dependencies(ctx: ProjectContext):
    declared = declared_packages(ctx)
    return [name for name in DEV_DEPENDENCIES if name not in declared]


def probe_dev_dependencies(ctx: ProjectContext):
    missing = missing_dev_dependencies(ctx)
    if missing:
        return False, f"not declared: {', '.join(missing)}"
    return True, f"declared: {', '.join(DEV_DEPENDENCIES)}"


def fix_dev_dependencies(ctx: ProjectContext):
    missing = missing_dev_dependencies(ctx)
    if not missing:
        return []
    require_success(ctx.run_fix(['npm', 'install', '--save-dev'] + missing), ctx.stderr_tail_lines)
    return ['package.json', 'package-lock.json']


def probe_eslint_runs(ctx: ProjectContext):
    if not ctx.exists(ESLINT_BIN):
        return False, f"{ESLINT_BIN} not found; run npm install"
    result = ctx.run([ESLINT_BIN, '--version'])
    if not result.ok:
        raise ToolError(f"eslint --version exited with code {result.returncode}", result.stderr_tail())
    return True, f"eslint {result.stdout.strip()}"


def probe_tsconfig(ctx: ProjectContext):
    # tsconfig.json allows comments, so only its presence is checked
    if ctx.exists('tsconfig.json'):
        return True, "tsconfig.json present"
    return False, "tsconfig.json missing"


RULES = [
    Rule(
        id='lint.eslint_config',
        category=Category.LINT,
        severity=Severity.WARNING,
        description="ESLint configuration present",
        probe=config_file_probe(ESLINT_CONFIGS, package_key='eslintConfig'),
        fix=write_template_fix('.eslintrc.js', ESLINT_TEMPLATE, alternatives=ESLINT_CONFIGS),
        targets=('.eslintrc.js',),
        applies_to=is_node_project,
        remediation="Create .eslintrc.js or run `npm init @eslint/config`.",
    ),
    Rule(
        id='lint.prettier_config',
        category=Category.LINT,
        severity=Severity.WARNING,
        description="Prettier configuration present",
        probe=config_file_probe(PRETTIER_CONFIGS, package_key='prettier'),
        fix=write_template_fix('.prettierrc', dump_json(PRETTIER_SETTINGS), alternatives=PRETTIER_CONFIGS),
        targets=('.prettierrc',),
        applies_to=is_node_project,
        remediation="Create .prettierrc with your formatting preferences.",
    ),
    Rule(
        id='lint.lint_staged',
        category=Category.LINT,
        severity=Severity.BLOCKING,
        description="lint-staged runs linters on staged files",
        probe=probe_lint_staged,
        fix=fix_lint_staged,
        prerequisites={'project.manifest'},
        targets=('package.json',),
        applies_to=is_node_project,
        remediation="Add a \"lint-staged\" section to package.json.",
    ),
    Rule(
        id='lint.commitlint_config',
        category=Category.LINT,
        severity=Severity.WARNING,
        description="commitlint configuration present",
        probe=config_file_probe(COMMITLINT_CONFIGS, package_key='commitlint'),
        fix=write_template_fix('commitlint.config.js', COMMITLINT_TEMPLATE, alternatives=COMMITLINT_CONFIGS),
        targets=('commitlint.config.js',),
        applies_to=is_node_project,
        remediation="Create commitlint.config.js extending @commitlint/config-conventional.",
    ),
    Rule(
        id='lint.package_scripts',
        category=Category.LINT,
        severity=Severity.WARNING,
        description="package.json defines lint, format and test scripts",
        probe=json_keys_probe('package.json', 'scripts', list(PACKAGE_SCRIPTS)),
        fix=add_json_defaults_fix('package.json', 'scripts', PACKAGE_SCRIPTS),
        prerequisites={'project.manifest'},
        targets=('package.json',),
        applies_to=is_node_project,
        remediation="Add \"lint\", \"format\" and \"test\" entries to package.json scripts.",
    ),
    Rule(
        id='lint.dev_dependencies',
        category=Category.LINT,
        severity=Severity.WARNING,
        description="Tooling packages declared as dev dependencies",
        probe=probe_dev_dependencies,
        fix=fix_dev_dependencies,
        prerequisites={'project.manifest'},
        targets=('package.json', 'package-lock.json'),
        applies_to=is_node_project,
        remediation="npm install --save-dev " + ' '.join(DEV_DEPENDENCIES),
    ),
    Rule(
        id='lint.eslint_runs',
        category=Category.LINT,
        severity=Severity.INFORMATIONAL,
        description="Locally installed ESLint executes",
        probe=probe_eslint_runs,
        prerequisites={'lint.dev_dependencies'},
        applies_to=is_node_project,
        remediation="Run `npm install` and check `npx eslint --version`.",
    ),
    Rule(
        id='lint.tsconfig',
        category=Category.LINT,
        severity=Severity.WARNING,
        description="TypeScript project has a tsconfig.json",
        probe=probe_tsconfig,
        fix=write_template_fix('tsconfig.json', dump_json(TSCONFIG)),
        targets=('tsconfig.json',),
        applies_to=is_typescript_project,
        remediation="Run `npx tsc --init`.",
    ),
]
