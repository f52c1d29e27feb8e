from __future__ import annotations

import ast
import importlib.machinery
import importlib.util
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dissect.execution.exceptions import ConfigError
from dissect.execution.helpers.cursor import MAX_PATH_CHARS
from dissect.execution.lnk import MAX_LNK_SIZE

if TYPE_CHECKING:
    from types import ModuleType

log = logging.getLogger(__name__)

CONFIG_NAME = ".executioncfg.py"

DEFAULTS: dict[str, Any] = {
    "MAX_LNK_SIZE": MAX_LNK_SIZE,
    "LNK_CODEPAGE": "cp1252",
    "MAX_PATH_CHARS": MAX_PATH_CHARS,
    "WORKERS": 1,
}


def load(paths: list[Path | str] | Path | str | None) -> ModuleType:
    """Attempt to load one configuration from the provided path(s)."""

    if isinstance(paths, (Path, str)):
        paths = [paths]

    config_spec = importlib.machinery.ModuleSpec("config", None)
    config = importlib.util.module_from_spec(config_spec)
    config_file = _find_config_file(paths)

    if config_file:
        log.debug("Loading config from %s", config_file)
        config_values = _parse_ast(config_file.read_bytes())
        config.__dict__.update(config_values)

    return config


def settings(config: ModuleType | None = None, **overrides: Any) -> dict[str, Any]:
    """Merge a loaded config and explicit overrides over :data:`DEFAULTS`.

    Overrides that are ``None`` are ignored, so unset command line options fall through to the config file.

    Raises:
        ConfigError: If a known key holds a value of the wrong type or a non-positive number.
    """
    result = dict(DEFAULTS)

    if config is not None:
        result.update({key: getattr(config, key) for key in DEFAULTS if hasattr(config, key)})

    result.update({key: value for key, value in overrides.items() if value is not None})

    for key, default in DEFAULTS.items():
        value = result[key]
        # bool is an int subclass, but never a valid size or count
        if not isinstance(value, type(default)) or isinstance(value, bool):
            raise ConfigError(f"{key} must be of type {type(default).__name__}, got {value!r}")
        if isinstance(value, int) and value < 1:
            raise ConfigError(f"{key} must be a positive number, got {value!r}")

    return result


def _parse_ast(code: str) -> dict[str, str | int]:
    # Only allow basic value assignments
    obj = {}

    module = ast.parse(code)
    if not isinstance(module, ast.Module):
        log.debug("Config did not parse to a module AST -- skipping")
        return obj

    for statement in module.body:
        if (
            not isinstance(statement, ast.Assign)
            or len(statement.targets) != 1
            or not isinstance(statement.value, ast.Constant)
        ):
            log.debug("Skipping non-constant assignment")
            continue

        target = statement.targets[0]
        if not isinstance(target, ast.Name) or not isinstance(target.ctx, ast.Store):
            log.debug("Skipping non-name assignment store")
            continue

        obj[target.id] = statement.value.value

    return obj


def _find_config_file(paths: list[Path | str] | None) -> Path | None:
    """Find a config file anywhere in the given path(s) and return it.

    This algorithm allows parts of the path to not exist or the last part to be a filename.
    It also does not look in the root directory ('/') for config files.
    """

    if not paths:
        return None

    config_file = None

    for path in paths:
        if not path:
            continue

        path = Path(path)
        cur_path = path.absolute()

        # Look for a config file in provided path or in parent directories until found.
        while not config_file and cur_path.name != "":
            if cur_path.exists():
                cur_config = cur_path.joinpath(CONFIG_NAME)
                if cur_config.is_file():
                    config_file = cur_config
            cur_path = cur_path.parent

        if config_file:
            break

    return config_file
