"""
Laravel rules. Apply only when composer.json requires laravel/framework.

Rules:
    php.composer_scripts  composer.json test/lint/analyze scripts
    php.dev_tools         Pest, Pint and Larastan required for dev
"""

from ..core.context import ProjectContext
from ..core.models import Category, Rule, Severity
from ..core.tools import require_success
from .base import add_json_defaults_fix, is_laravel_project, json_keys_probe, load_manifest


COMPOSER_SCRIPTS = {
    "test": "./vendor/bin/pest",
    "test:coverage": "./vendor/bin/pest --coverage",
    "lint": "./vendor/bin/pint",
    "analyze": "./vendor/bin/phpstan analyse",
    "quality": "composer lint && composer analyze && composer test",
}

DEV_TOOLS = (
    'pestphp/pest',
    'laravel/pint',
    'nunomaduro/larastan',
)


def missing_dev_tools(ctx: ProjectContext):
    manifest = load_manifest(ctx, 'composer.json')
    required = set()
    for section in ('require', 'require-dev'):
        deps = manifest.get(section)
        if isinstance(deps, dict):
            required.update(deps)
    return [tool for tool in DEV_TOOLS if tool not in required]


def probe_dev_tools(ctx: ProjectContext):
    missing = missing_dev_tools(ctx)
    if missing:
        return False, f"composer.json does not require: {', '.join(missing)}"
    return True, f"required: {', '.join(DEV_TOOLS)}"


def fix_dev_tools(ctx: ProjectContext):
    missing = missing_dev_tools(ctx)
    if not missing:
        return []
    require_success(ctx.run_fix(['composer', 'require', '--dev'] + missing), ctx.stderr_tail_lines)
    return ['composer.json', 'composer.lock']


RULES = [
    Rule(
        id='php.composer_scripts',
        category=Category.STRUCTURE,
        severity=Severity.WARNING,
        description="composer.json defines test, lint and analysis scripts",
        probe=json_keys_probe('composer.json', 'scripts', list(COMPOSER_SCRIPTS)),
        fix=add_json_defaults_fix('composer.json', 'scripts', COMPOSER_SCRIPTS),
        prerequisites={'project.manifest'},
        targets=('composer.json',),
        applies_to=is_laravel_project,
        remediation="Add test, lint and analyze entries to composer.json scripts.",
    ),
    Rule(
        id='php.dev_tools',
        category=Category.LINT,
        severity=Severity.WARNING,
        description="Pest, Pint and Larastan installed for development",
        probe=probe_dev_tools,
        fix=fix_dev_tools,
        prerequisites={'project.manifest'},
        targets=('composer.json', 'composer.lock'),
        applies_to=is_laravel_project,
        remediation="composer require --dev " + ' '.join(DEV_TOOLS),
    ),
]
