"""
Configuration loading and validation for Toolguard.

Validation runs before any rule is probed so that a bad config file is
reported once, with actionable messages, instead of surfacing as odd probe
errors later:

1. Type checking at load time (strings where numbers are expected, etc.)
2. Numeric range validation (timeouts, worker counts)
3. List vs string coercion for rule id lists
4. Resource limits (file size, nesting depth)
5. Clear error messages with suggestions

Usage:
    config, result = validate_and_load_config(Path("toolguard.yaml"))
    result.log_warnings().raise_if_invalid()
"""

import copy
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

if sys.version_info >= (3, 11):
    import tomllib
else:
    import toml as tomllib


logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_ARRAY_SIZE = 10000
MAX_NESTING_DEPTH = 20
MAX_TIMEOUT = 3600.0
MAX_WORKERS = 8

CONFIG_FILENAMES = ('toolguard.yaml', 'toolguard.yml', 'toolguard.toml', 'toolguard.json')

VALID_FORMATS = ('markdown', 'json', 'both')
VALID_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

DEFAULT_CONFIG: Dict[str, Any] = {
    'project': {
        'root': '.',
    },
    'engine': {
        'probe_timeout': 5.0,
        'fix_timeout': 30.0,
        'max_workers': None,
        'parallel': True,
        'stderr_tail_lines': 20,
    },
    'rules': {
        'disabled': [],
        'only': [],
    },
    'reporting': {
        'output_dir': None,
        'format': 'markdown',
    },
    'logging': {
        'level': 'WARNING',
        'file': None,
    },
}

KNOWN_KEYS = {section: set(values) for section, values in DEFAULT_CONFIG.items()}


class ConfigError(Exception):
    """Configuration validation error with context."""

    def __init__(self, key: str, message: str, value: Any = None, suggestion: str = None):
        self.key = key
        self.value = value
        self.suggestion = suggestion
        full_message = f"Config error at '{key}': {message}"
        if value is not None:
            full_message += f" (got: {value!r})"
        if suggestion:
            full_message += f". Suggestion: {suggestion}"
        super().__init__(full_message)


class ConfigValidationError(Exception):
    """
    Raised when configuration validation fails with multiple errors.
    """

    def __init__(self, errors: List[str], warnings: List[str] = None):
        self.errors = errors
        self.warnings = warnings or []
        message = f"Configuration validation failed with {len(errors)} error(s):\n"
        message += "\n".join(f"  - {err}" for err in errors[:20])
        if len(errors) > 20:
            message += f"\n  ... and {len(errors) - 20} more errors"
        super().__init__(message)


@dataclass
class ValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    validated_config: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.is_valid

    def raise_if_invalid(self) -> 'ValidationResult':
        """Raise ConfigValidationError if validation failed."""
        if not self.is_valid:
            raise ConfigValidationError(self.errors, self.warnings)
        return self

    def log_warnings(self) -> 'ValidationResult':
        for warning in self.warnings:
            logger.warning(f"Config warning: {warning}", extra={'error_code': 'CFG-02'})
        return self


def validate_timeout(value: Any, key_name: str, max_val: float = MAX_TIMEOUT) -> float:
    """
    Validate a timeout in seconds: a finite number in (0, max_val].

    Args:
        value: Value to validate
        key_name: Config key name for error messages
        max_val: Maximum allowed value

    Returns:
        Validated float value

    Raises:
        ConfigError: If value is invalid or out of range
    """
    if value is None:
        raise ConfigError(key_name, "Value is null/None", None, "Set to a number of seconds, e.g. 5")

    # Quoted numbers are a common YAML/TOML mistake
    if isinstance(value, str):
        raise ConfigError(
            key_name,
            "Must be a number, got string",
            value,
            f"Remove quotes: use {key_name.split('.')[-1]} = 5 instead of \"{value}\""
        )

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(key_name, f"Must be numeric, got {type(value).__name__}", value, "Use a number like 5")

    if isinstance(value, float):
        if value != value:
            raise ConfigError(key_name, "Value is NaN (Not a Number)", "NaN", "Use a positive number")
        if value in (float('inf'), float('-inf')):
            raise ConfigError(key_name, "Value is infinite", "Infinity", f"Use a number up to {max_val}")

    if value <= 0:
        raise ConfigError(key_name, "Must be greater than zero", value, "Use a positive number of seconds")

    if value > max_val:
        raise ConfigError(key_name, f"Value too high (maximum is {max_val})", value,
                          f"Decrease to at most {max_val}")

    return float(value)


def validate_positive_int(value: Any, key_name: str, min_val: int = 0, max_val: Optional[int] = None) -> int:
    """
    Validate an integer within [min_val, max_val].

    Raises:
        ConfigError: If value is not an integer or out of range
    """
    if value is None:
        raise ConfigError(key_name, "Value cannot be None")

    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(key_name, f"Must be an integer, got {type(value).__name__}", value)

    if value < min_val:
        raise ConfigError(key_name, f"Must be at least {min_val}", value)

    if max_val is not None and value > max_val:
        raise ConfigError(key_name, f"Must be at most {max_val}", value, f"Use a value up to {max_val}")

    return value


def ensure_list(value: Any, key_name: str, coerce_string: bool = True) -> List[Any]:
    """
    Ensure value is a list, optionally converting a string to a single-item list.

    A bare string where a list is expected would otherwise be iterated
    character by character.

    Args:
        value: Value to convert
        key_name: Config key name for error messages
        coerce_string: If True, convert a single string to [string]. If False, raise error.

    Returns:
        List value

    Raises:
        ConfigError: If value cannot be converted to list
    """
    if value is None:
        return []

    if isinstance(value, str):
        if coerce_string:
            logger.warning(
                f"Config '{key_name}': Expected list but got string '{value}'. "
                f"Converting to single-item list."
            )
            return [value]
        raise ConfigError(key_name, "Expected a list, got a string", value,
                          f"Use [\"{value}\"] for a single-item list, or [] for empty")

    if isinstance(value, list):
        if len(value) > MAX_ARRAY_SIZE:
            raise ConfigError(
                key_name,
                f"List has {len(value)} items, exceeds limit of {MAX_ARRAY_SIZE}",
                f"[{len(value)} items]",
                f"Reduce to fewer than {MAX_ARRAY_SIZE} items"
            )
        return value

    if isinstance(value, dict):
        raise ConfigError(key_name, "Expected list, got dict/object", value,
                          "Use list syntax: [item1, item2] or YAML list with - prefix")

    raise ConfigError(key_name, f"Expected list, got {type(value).__name__}", value,
                      "Use list syntax: [item1, item2]")


def merge_with_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge a user config over DEFAULT_CONFIG (two levels)."""
    merged = copy.deepcopy(DEFAULT_CONFIG)
    for section, values in (config or {}).items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def validate_config_schema(
    config: Dict[str, Any],
    known_rule_ids: Optional[List[str]] = None,
) -> ValidationResult:
    """
    Validate a configuration against the schema.

    Unknown sections and keys produce warnings. Wrong types and out-of-range
    numbers produce errors. Rule ids are checked against known_rule_ids when
    given (unknown ids are warnings, they may belong to a newer catalog).

    Args:
        config: Configuration dictionary (user values, not yet merged)
        known_rule_ids: Rule ids of the active catalog

    Returns:
        ValidationResult; validated_config is merged with defaults when valid
    """
    errors: List[str] = []
    warnings: List[str] = []

    def add_error(key: str, msg: str, suggestion: str = None):
        full_msg = f"[{key}] {msg}"
        if suggestion:
            full_msg += f" | Suggestion: {suggestion}"
        errors.append(full_msg)

    def add_warning(key: str, msg: str):
        warnings.append(f"[{key}] {msg}")

    def check(key: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ConfigError as e:
            add_error(key, str(e), e.suggestion)
            return None

    if config is None:
        add_error('config', 'Configuration is None (file may be empty)', 'Provide a valid config file')
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

    if not isinstance(config, dict):
        add_error('config', f'Configuration must be a dictionary, got {type(config).__name__}',
                  'Use TOML sections like [engine] or YAML mappings')
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

    def check_depth(obj: Any, path: str, depth: int) -> bool:
        if depth > MAX_NESTING_DEPTH:
            add_error(path, f'Config nesting too deep (max {MAX_NESTING_DEPTH})', 'Flatten config structure')
            return False
        if isinstance(obj, dict):
            return all(check_depth(v, f'{path}.{k}', depth + 1) for k, v in list(obj.items())[:100])
        if isinstance(obj, list):
            return all(check_depth(v, f'{path}[{i}]', depth + 1) for i, v in enumerate(obj[:100]))
        return True

    if not check_depth(config, 'config', 0):
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

    for section, values in config.items():
        if section not in KNOWN_KEYS:
            add_warning(section, 'Unknown section, ignored')
            continue
        if not isinstance(values, dict):
            add_error(section, f'Must be a section/dict, got {type(values).__name__}',
                      f'Use [{section}] in TOML or {section}: in YAML')
            continue
        for key in values:
            if key not in KNOWN_KEYS[section]:
                add_warning(f'{section}.{key}', 'Unknown key, ignored')

    def section(name: str) -> Dict[str, Any]:
        values = config.get(name, {})
        return values if isinstance(values, dict) else {}

    # [project]
    project = section('project')
    if 'root' in project and not isinstance(project['root'], str):
        add_error('project.root', f"Must be a path string, got {type(project['root']).__name__}",
                  'Use root = "." for the config file directory')

    # [engine]
    engine = section('engine')
    for key in ('probe_timeout', 'fix_timeout'):
        if key in engine:
            check(f'engine.{key}', validate_timeout, engine[key], f'engine.{key}')
    if engine.get('max_workers') is not None:
        check('engine.max_workers', validate_positive_int, engine['max_workers'],
              'engine.max_workers', 1, MAX_WORKERS)
    if 'stderr_tail_lines' in engine:
        check('engine.stderr_tail_lines', validate_positive_int, engine['stderr_tail_lines'],
              'engine.stderr_tail_lines', 1, 1000)
    if 'parallel' in engine and not isinstance(engine['parallel'], bool):
        add_error('engine.parallel', f"Must be true or false, got {engine['parallel']!r}")

    # [rules]
    rules = section('rules')
    rule_lists: Dict[str, List[str]] = {}
    for key in ('disabled', 'only'):
        if key in rules:
            ids = check(f'rules.{key}', ensure_list, rules[key], f'rules.{key}')
            if ids is None:
                continue
            bad = [i for i in ids if not isinstance(i, str)]
            if bad:
                add_error(f'rules.{key}', f'Rule ids must be strings, got {bad[:5]!r}')
                continue
            rule_lists[key] = ids
            if known_rule_ids is not None:
                unknown = [i for i in ids if i not in known_rule_ids]
                if unknown:
                    add_warning(f'rules.{key}', f"Unknown rule id(s): {', '.join(unknown)}")

    # [reporting]
    reporting = section('reporting')
    fmt = reporting.get('format')
    if fmt is not None and fmt not in VALID_FORMATS:
        add_error('reporting.format', f"Invalid format '{fmt}'", f'Use one of: {", ".join(VALID_FORMATS)}')
    output_dir = reporting.get('output_dir')
    if output_dir is not None and not isinstance(output_dir, str):
        add_error('reporting.output_dir', f'Must be a path string, got {type(output_dir).__name__}')

    # [logging]
    log_config = section('logging')
    level = log_config.get('level')
    if level is not None and (not isinstance(level, str) or level.upper() not in VALID_LOG_LEVELS):
        add_error('logging.level', f"Invalid level {level!r}", f'Use one of: {", ".join(VALID_LOG_LEVELS)}')

    if errors:
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

    validated = merge_with_defaults({k: v for k, v in config.items() if k in KNOWN_KEYS})
    validated['rules'].update(rule_lists)
    if isinstance(validated['logging'].get('level'), str):
        validated['logging']['level'] = validated['logging']['level'].upper()

    return ValidationResult(is_valid=True, errors=errors, warnings=warnings, validated_config=validated)


def _parse(config_path: Path, text: str) -> Any:
    suffix = config_path.suffix.lower()
    if suffix in ('.yaml', '.yml'):
        return yaml.safe_load(text)
    if suffix == '.toml':
        return tomllib.loads(text)
    if suffix == '.json':
        return json.loads(text)
    raise ValueError(f"Unsupported config format: {suffix}. Use .yaml, .yml, .toml, or .json")


def validate_and_load_config(
    config_path: Path,
    known_rule_ids: Optional[List[str]] = None,
) -> Tuple[Dict[str, Any], ValidationResult]:
    """
    Load and validate a configuration file.

    Args:
        config_path: Path to config file (YAML, TOML, or JSON)
        known_rule_ids: Rule ids of the active catalog

    Returns:
        (raw_config, validation_result)

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the file is too large or the format is unsupported
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    file_size = config_path.stat().st_size
    if file_size > MAX_FILE_SIZE:
        raise ValueError(f"Config file too large: {config_path} ({file_size:,} bytes). Maximum is 10MB.")

    text = config_path.read_text(encoding='utf-8')
    try:
        config = _parse(config_path, text)
    except yaml.YAMLError as e:
        return {}, ValidationResult(is_valid=False, errors=[f"[config_file] YAML parse error: {e}"])
    except json.JSONDecodeError as e:
        return {}, ValidationResult(is_valid=False,
                                    errors=[f"[config_file] JSON parse error at line {e.lineno}: {e.msg}"])
    except ValueError as e:
        if config_path.suffix.lower() != '.toml':
            raise
        # tomllib.TOMLDecodeError and toml.TomlDecodeError are both ValueErrors
        return {}, ValidationResult(is_valid=False, errors=[f"[config_file] TOML parse error: {e}"])

    if config is None:
        # An empty file means "all defaults"
        config = {}

    if not isinstance(config, dict):
        return {}, ValidationResult(
            is_valid=False,
            errors=["[config] Config must be a dictionary/mapping, got " + type(config).__name__],
        )

    result = validate_config_schema(config, known_rule_ids=known_rule_ids)
    if result.is_valid:
        root = Path(result.validated_config['project']['root'])
        if not root.is_absolute():
            root = config_path.parent / root
        result.validated_config['project']['root'] = str(root.resolve())

    return config, result


def find_config_file(root: Path) -> Optional[Path]:
    """Return the first toolguard config file found in root, if any."""
    for name in CONFIG_FILENAMES:
        candidate = Path(root) / name
        if candidate.is_file():
            return candidate
    return None


def load_config_strict(config_path: Optional[Path], known_rule_ids: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Load config and raise immediately if validation fails.

    Args:
        config_path: Path to config file, or None for defaults only
        known_rule_ids: Rule ids of the active catalog

    Returns:
        Validated configuration dictionary merged with defaults

    Raises:
        ConfigValidationError: If any validation errors occur
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is unsupported
    """
    if config_path is None:
        return merge_with_defaults({})

    _, result = validate_and_load_config(config_path, known_rule_ids=known_rule_ids)
    if not result.is_valid:
        for err in result.errors:
            logger.error(err, extra={'error_code': 'CFG-01'})
    result.log_warnings().raise_if_invalid()
    return result.validated_config
