"""
Retry controller for a single test.

The repeater runs a test body, looks at the exception the attempt recorded on
the current example, and decides whether to run it again. It only needs three
things from its host:

- an invocation: ``run()`` executes the test body once and records, rather
  than raises, any failure on the current example
- an example: ``exception`` (readable and writable) and ``location``
- a context: ``current_example``, ``reset_memoized()`` and ``report(message)``

Usage:
    repeater = Repeater(3, wait=1, exceptions=[TimeoutError])
    repeater.run(invocation, context)
"""
import logging
import math
import time
from numbers import Real
from typing import Any, Callable, Iterable, Optional, Tuple, Type, Union

from .config import Config

logger = logging.getLogger("flaky-repeat")

# Called after a retryable failure: (index, invocation, example, context)
FailureCallback = Callable[[int, Any, Any, Any], None]

OPTIONS = ('wait', 'verbose', 'exceptions', 'clear_let')
OPTION_ALIASES = {'clear_cached_state': 'clear_let'}


class ConfigurationError(ValueError):
    """Raised when a repeater is given an unknown option or a bad value."""


def ordinal_suffix(number: int) -> str:
    """
    Suffix for the English ordinal of a number

    Args:
        number: Attempt number (1-based)

    Returns:
        "st", "nd", "rd" or "th"
    """
    if 11 <= number % 100 <= 13:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")


def ordinalize(number: int) -> str:
    return f"{number}{ordinal_suffix(number)}"


def matches_exceptions(exceptions: Optional[Tuple[Type[BaseException], ...]],
                       exception: BaseException) -> bool:
    """True if ``exception`` may be retried under the allow-list ``exceptions``."""
    if exceptions is None:
        return True
    return any(isinstance(exception, exception_class) for exception_class in exceptions)


class Repeater:
    """Runs one test up to ``count`` times until it passes."""

    def __init__(self, count: Union[int, Iterable[int]], **options: Any):
        """
        Args:
            count: Total number of attempts, or the attempt indices to run
            **options: wait, verbose, exceptions, clear_let (alias clear_cached_state)

        Raises:
            ConfigurationError: Unknown option key or invalid value
        """
        resolved = {}
        for key, value in options.items():
            name = OPTION_ALIASES.get(key, key)
            if name not in OPTIONS:
                raise ConfigurationError(f"Unknown repeat option: {key!r}")
            if name in resolved:
                raise ConfigurationError(f"Repeat option given twice: {name!r}")
            resolved[name] = value

        self.count = self._normalize_count(count)
        self.wait = self._normalize_wait(resolved.get('wait'))
        self.exceptions = self._normalize_exceptions(resolved.get('exceptions'))

        verbose = resolved.get('verbose')
        self.verbose = Config().verbose if verbose is None else bool(verbose)

        clear_let = resolved.get('clear_let')
        self.clear_let = True if clear_let is None else bool(clear_let)

    @property
    def max_attempts(self) -> int:
        return len(self.count)

    @staticmethod
    def _normalize_count(count) -> Tuple[int, ...]:
        if isinstance(count, bool):
            raise ConfigurationError(f"Invalid repeat count: {count!r}")
        if isinstance(count, int):
            if count < 1:
                raise ConfigurationError(f"Repeat count must be at least 1, got {count}")
            return tuple(range(count))
        if isinstance(count, (str, bytes)):
            raise ConfigurationError(f"Invalid repeat count: {count!r}")
        try:
            indices = tuple(count)
        except TypeError:
            raise ConfigurationError(f"Invalid repeat count: {count!r}") from None
        if not indices:
            raise ConfigurationError("Repeat count sequence is empty")
        for index in indices:
            if isinstance(index, bool) or not isinstance(index, int):
                raise ConfigurationError(f"Invalid attempt index: {index!r}")
        return indices

    @staticmethod
    def _normalize_wait(wait) -> float:
        if wait is None:
            return 0
        if isinstance(wait, bool) or not isinstance(wait, Real):
            raise ConfigurationError(f"Invalid repeat wait: {wait!r}")
        if not math.isfinite(wait):
            raise ConfigurationError(f"Repeat wait must be finite, got {wait!r}")
        return wait

    @staticmethod
    def _normalize_exceptions(exceptions) -> Optional[Tuple[Type[BaseException], ...]]:
        if exceptions is None:
            return None
        if isinstance(exceptions, type):
            exceptions = (exceptions,)
        try:
            exceptions = tuple(exceptions)
        except TypeError:
            raise ConfigurationError(f"Invalid repeat exceptions: {exceptions!r}") from None
        for exception_class in exceptions:
            if not (isinstance(exception_class, type) and issubclass(exception_class, BaseException)):
                raise ConfigurationError(f"Not an exception class: {exception_class!r}")
        return exceptions

    def run(self, invocation, context, callback: Optional[FailureCallback] = None) -> Optional[BaseException]:
        """
        Run the test until it passes, fails with a non-retryable exception,
        or runs out of attempts

        Args:
            invocation: Runs the test body once, recording failures on the example
            context: Host context giving the current example and memoized state
            callback: Called after each retryable failure, before the reset

        Returns:
            The exception left recorded on the example, None if the test passed
        """
        example = context.current_example

        for attempt, i in enumerate(self.count, start=1):
            example.exception = None
            logger.debug("Attempt %d/%d for %s", attempt, self.max_attempts, example.location)
            invocation.run()

            exception = example.exception
            if exception is None:
                if attempt > 1:
                    logger.info("%s passed on the %s try", example.location, ordinalize(attempt))
                break
            if not matches_exceptions(self.exceptions, exception):
                logger.info("%s raised %s, not retrying", example.location, type(exception).__name__)
                break

            if self.verbose:
                self.print_failure(attempt, example, context)
            if callback is not None:
                callback(i, invocation, example, context)
            if self.clear_let:
                context.reset_memoized()
            if int(self.wait) > 0 and attempt < self.max_attempts:
                time.sleep(self.wait)
        else:
            logger.warning("%s failed all %d attempts", example.location, self.max_attempts)

        return example.exception

    def print_failure(self, attempt: int, example, context) -> None:
        message = (
            f"flaky-repeat: {ordinalize(attempt)} try error in {example.location}:\n"
            f"  {example.exception}\n"
        )
        context.report(message)


def repeat(invocation, count: Union[int, Iterable[int]], context,
           callback: Optional[FailureCallback] = None, **options: Any) -> Optional[BaseException]:
    """
    Repeat a test invocation inside its host context

    Args:
        invocation: Runs the test body once
        count: Total number of attempts, or the attempt indices to run
        context: Host context of the running test
        callback: Called as callback(i, invocation, example, context) after each retryable failure
        **options: Repeater options

    Returns:
        The exception left recorded on the example, None if the test passed
    """
    return Repeater(count, **options).run(invocation, context, callback)
