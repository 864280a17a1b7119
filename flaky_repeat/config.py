"""
Configuration management for flaky-repeat
"""
import os
from typing import Optional


TRUTHY_VALUES = ('1', 'true', 'yes', 'on')


class Config:
    """Environment-derived defaults for repeated tests"""

    VERBOSE_ENV = 'FLAKY_REPEAT_VERBOSE'

    def __init__(self):
        # Print a line for every failed attempt unless a repeat says otherwise
        self.verbose = self.parse_flag(os.environ.get(self.VERBOSE_ENV))

    @staticmethod
    def parse_flag(value: Optional[str]) -> bool:
        """
        Interpret a boolean-like environment value

        Args:
            value: Raw environment value, or None when unset

        Returns:
            True for 1/true/yes/on (any case), False otherwise
        """
        if value is None:
            return False
        return value.strip().lower() in TRUTHY_VALUES
