"""Constants used in the project.

Values may be overridden from a YAML file named by the ``MODRESOLVE_CONFIG``
environment variable; see ``_load_yaml_config``.
"""

import logging
import os
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    # Reserved requirement name that always designates the framework module.
    SYSTEM_MODULE_ALIAS = "system.module"
    # Symbolic name reported when no State designates a system module.
    INTERNAL_SYSTEM_MODULE_NAME = "modresolve.framework"

    RESOLVER_MAX_BACKTRACKS = 10000

    # Reserved attribute filter keys
    ATTR_MODULE_SYMBOLIC_NAME = "module-symbolic-name"
    ATTR_MODULE_VERSION = "module-version"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVEL_ENV = "MODRESOLVE_LOG_LEVEL"
    CONFIG_ENV = "MODRESOLVE_CONFIG"


# Keys accepted from YAML, mapped onto Constants attributes with their types.
_CONFIG_KEYS = {
    "system_module_alias": ("SYSTEM_MODULE_ALIAS", str),
    "internal_system_module_name": ("INTERNAL_SYSTEM_MODULE_NAME", str),
    "max_backtracks": ("RESOLVER_MAX_BACKTRACKS", int),
    "log_format": ("LOG_FORMAT", str),
}


def apply_config(cfg: Dict[str, Any]) -> None:
    """Apply a configuration mapping over Constants.

    The mapping may be flat or nested under a ``resolver`` key. Unknown keys
    are logged and ignored.

    Args:
        cfg: Parsed configuration mapping.
    """
    if not isinstance(cfg, dict):
        logger.warning("Ignoring configuration: expected a mapping, got %s", type(cfg).__name__)
        return
    section = cfg.get("resolver", cfg)
    if not isinstance(section, dict):
        logger.warning("Ignoring configuration: 'resolver' section is not a mapping")
        return
    for key, value in section.items():
        target = _CONFIG_KEYS.get(key)
        if target is None:
            logger.warning("Unknown configuration key '%s' ignored", key)
            continue
        attr, kind = target
        try:
            setattr(Constants, attr, kind(value))
        except (TypeError, ValueError):
            logger.warning("Invalid value for '%s': %r", key, value)


def _load_yaml_config(path: Optional[str] = None) -> bool:
    """Load YAML overrides into Constants.

    Args:
        path: Explicit config path; defaults to the ``MODRESOLVE_CONFIG`` env var.

    Returns:
        True when a file was read and applied.
    """
    path = path or os.environ.get(Constants.CONFIG_ENV)
    if not path:
        return False
    try:
        with open(path, "r", encoding="utf-8") as fh:
            cfg = yaml.safe_load(fh) or {}
    except OSError as exc:
        logger.warning("Could not read config file %s: %s", path, exc)
        return False
    except yaml.YAMLError as exc:
        logger.warning("Malformed config file %s: %s", path, exc)
        return False
    apply_config(cfg)
    return True


_load_yaml_config()
