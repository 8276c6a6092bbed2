"""
CI and release rules.

Rules:
    release.ci_workflow  a GitHub Actions test workflow exists and defines jobs
    release.releaserc    semantic-release configuration present
"""

import yaml

from ..core.context import ProjectContext
from ..core.models import Category, Rule, Severity
from .base import config_file_probe, dump_json, first_existing, is_node_project, write_template_fix


WORKFLOW_DIR = '.github/workflows'
WORKFLOW_FILE = f'{WORKFLOW_DIR}/test.yml'
WORKFLOW_CANDIDATES = tuple(
    f'{WORKFLOW_DIR}/{name}.{ext}' for name in ('test', 'tests', 'ci') for ext in ('yml', 'yaml')
)

WORKFLOW_TEMPLATE = """name: Tests

on:
  push:
    branches: [ main, develop ]
  pull_request:
    branches: [ main ]

jobs:
  test:
    runs-on: ubuntu-latest

    steps:
    - uses: actions/checkout@v4

    - name: Setup Node.js
      uses: actions/setup-node@v4
      with:
        node-version: '18'
        cache: 'npm'

    - name: Install dependencies
      run: npm ci

    - name: Run linting
      run: npm run lint

    - name: Run tests
      run: npm test
"""

RELEASERC = {
    "branches": ["main"],
    "plugins": [
        "@semantic-release/commit-analyzer",
        "@semantic-release/release-notes-generator",
        "@semantic-release/changelog",
        "@semantic-release/npm",
        "@semantic-release/git",
        "@semantic-release/github",
    ],
}

RELEASERC_CONFIGS = ('.releaserc.json', '.releaserc', '.releaserc.yml', '.releaserc.yaml',
                     '.releaserc.js', 'release.config.js')


def probe_ci_workflow(ctx: ProjectContext):
    found = first_existing(ctx, WORKFLOW_CANDIDATES)
    if found is None:
        return False, f"no test workflow in {WORKFLOW_DIR}/"
    try:
        workflow = yaml.safe_load(ctx.read_text(found))
    except yaml.YAMLError as e:
        return False, f"{found} is not valid YAML: {e}"
    if not isinstance(workflow, dict) or not workflow.get('jobs'):
        return False, f"{found} defines no jobs"
    return True, f"{found} defines {len(workflow['jobs'])} job(s)"


RULES = [
    Rule(
        id='release.ci_workflow',
        category=Category.RELEASE,
        severity=Severity.WARNING,
        description="CI workflow runs lint and tests",
        probe=probe_ci_workflow,
        fix=write_template_fix(WORKFLOW_FILE, WORKFLOW_TEMPLATE, alternatives=WORKFLOW_CANDIDATES),
        targets=(WORKFLOW_FILE,),
        applies_to=is_node_project,
        remediation=f"Add a workflow such as {WORKFLOW_FILE} that runs `npm ci`, lint and tests.",
    ),
    Rule(
        id='release.releaserc',
        category=Category.RELEASE,
        severity=Severity.INFORMATIONAL,
        description="semantic-release configuration present",
        probe=config_file_probe(RELEASERC_CONFIGS, package_key='release'),
        fix=write_template_fix('.releaserc.json', dump_json(RELEASERC), alternatives=RELEASERC_CONFIGS),
        targets=('.releaserc.json',),
        applies_to=is_node_project,
        remediation="Create .releaserc.json listing your semantic-release plugins.",
    ),
]
