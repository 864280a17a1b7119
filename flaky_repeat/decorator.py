"""
Repeat decorator for brittle tests outside the pytest marker.

Runs the wrapped test function up to ``count`` times within the same call,
so it also works for unittest methods and for plain callables.
"""
import inspect
import logging
from functools import wraps
from typing import Any, Callable, Optional

import pytest

from .memo import LetStore
from .repeater import FailureCallback, Repeater

logger = logging.getLogger("flaky-repeat")


class CallExample:
    """One call of a decorated test function"""

    def __init__(self, test_func: Callable):
        self.test_func = test_func
        self.exception: Optional[BaseException] = None

    @property
    def location(self) -> str:
        code = getattr(self.test_func, '__code__', None)
        if code is None:
            return getattr(self.test_func, '__qualname__', repr(self.test_func))
        return f"{code.co_filename}:{code.co_firstlineno}"


class CallInvocation:
    """Calls the test function with fixed arguments, recording failures"""

    def __init__(self, test_func: Callable, example: CallExample, args, kwargs):
        self.test_func = test_func
        self.example = example
        self.args = args
        self.kwargs = kwargs
        self.result: Any = None

    def run(self) -> None:
        try:
            self.result = self.test_func(*self.args, **self.kwargs)
        except pytest.xfail.Exception:
            raise
        except (Exception, pytest.fail.Exception) as e:
            self.example.exception = e


class CallContext:
    """Memoized values for one decorated call; failures are logged"""

    def __init__(self, test_func: Callable):
        self.current_example = CallExample(test_func)
        self.let = LetStore()

    def reset_memoized(self) -> None:
        self.let.clear()

    def report(self, message: str) -> None:
        logger.warning(message.rstrip())


def repeat_test(count, callback: Optional[FailureCallback] = None, **options: Any):
    """
    Repeat decorator for intermittent tests

    Options are checked when the decorator is applied, so a typo fails at
    import time rather than when the test runs.

    Args:
        count: Total number of attempts, or the attempt indices to run
        callback: Called as callback(i, invocation, example, context) after each retryable failure
        **options: wait, verbose, exceptions, clear_let
    """
    validated = Repeater(count, **options)

    def decorator(test_func: Callable) -> Callable:
        if inspect.iscoroutinefunction(test_func):
            raise TypeError(f"repeat_test does not support coroutine functions: {test_func.__qualname__}")

        @wraps(test_func)
        def wrapper(*args, **kwargs) -> Any:
            context = CallContext(test_func)
            invocation = CallInvocation(test_func, context.current_example, args, kwargs)

            exception = Repeater(validated.count, **options).run(invocation, context, callback)
            if exception is not None:
                raise exception
            return invocation.result

        return wrapper

    return decorator


def flaky_test(count: int = 3):
    """
    Lightweight decorator for tests that are known to be flaky.
    Retries on any exception, without waiting between attempts.
    """
    return repeat_test(count)
