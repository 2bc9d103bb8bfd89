# Configuration settings should be set in app.config or passed as SAREST(app, **kwargs)
# The get_config function looks up the app config first, then the SAREST class defaults, then the environment
import os
import logging
from flask import current_app
import sarest
from typing import Any, Optional

_BOOLEAN_STRINGS = {"1": True, "true": True, "yes": True, "0": False, "false": False, "no": False}


def get_config(option: str) -> Optional[Any]:
    """Retrieve a configuration parameter from the app
    :param option: configuration parameter
    :return: configuration value
    """
    try:
        result = current_app.config[option]
    except (KeyError, RuntimeError):
        result = getattr(sarest.SAREST, option, os.environ.get(option, None))
    return result


def get_flag(option: str) -> bool:
    """
    Retrieve a boolean feature flag, environment variable strings like "0" or "false" are handled
    :param option: configuration parameter
    :return: flag value
    """
    value = get_config(option)
    if isinstance(value, str):
        return _BOOLEAN_STRINGS.get(value.strip().lower(), bool(value))
    return bool(value)


def is_debug() -> bool:
    """
    We use the loglevel to check whether we're running in debug mode
    :return: whether the app is in debug mode
    :rtype: Boolean
    """
    return sarest.log.getEffectiveLevel() < logging.INFO
