"""
Framework configuration for modelstate.

Holds the handful of knobs shared by every Model and ModelArray:

- path_separator: joins attribute names into change paths (":person:name")
- id_attribute: default field backing ``Model.id`` when a class sets none
- raise_listener_errors: re-raise listener exceptions instead of logging them

The active configuration lives in a ContextVar so tests and embedding
applications can override it for a scope with ``config_context()``.
"""

import contextvars
import dataclasses
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelStateConfig:
    """Immutable framework settings."""
    path_separator: str = ":"
    id_attribute: str = "_id"
    raise_listener_errors: bool = False


_default_config = ModelStateConfig()

# Current configuration for this context
_current_config: contextvars.ContextVar[ModelStateConfig] = contextvars.ContextVar(
    'modelstate_config', default=_default_config
)


def get_config() -> ModelStateConfig:
    """Get the active configuration."""
    return _current_config.get()


def set_config(config: ModelStateConfig) -> None:
    """Replace the active configuration for the current context.

    Args:
        config: The new configuration
    """
    if not isinstance(config, ModelStateConfig):
        raise TypeError(f"Expected ModelStateConfig, got {type(config).__name__}")
    _current_config.set(config)
    logger.debug(f"modelstate config set: {config}")


def reset_config() -> None:
    """Restore the default configuration."""
    _current_config.set(_default_config)


@contextmanager
def config_context(**overrides) -> Generator[ModelStateConfig, None, None]:
    """Temporarily override configuration fields.

    Example:
        with config_context(raise_listener_errors=True):
            model.answer = 1  # listener errors propagate here

    Args:
        **overrides: ModelStateConfig field values to override

    Yields:
        The configuration active inside the block
    """
    config = dataclasses.replace(get_config(), **overrides)
    token = _current_config.set(config)
    try:
        yield config
    finally:
        _current_config.reset(token)
