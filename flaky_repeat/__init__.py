"""Re-run flaky tests until they pass"""

from .config import Config
from .decorator import flaky_test, repeat_test
from .memo import LetStore
from .repeater import (
    ConfigurationError,
    Repeater,
    matches_exceptions,
    ordinal_suffix,
    ordinalize,
    repeat,
)

__version__ = "0.1.0"

__all__ = [
    'Config',
    'ConfigurationError',
    'LetStore',
    'Repeater',
    'flaky_test',
    'matches_exceptions',
    'ordinal_suffix',
    'ordinalize',
    'repeat',
    'repeat_test',
]
