"""
pytest plugin: re-run a failing test function under the ``repeat`` marker.

    @pytest.mark.repeat(3, wait=1, exceptions=[ConnectionError])
    def test_remote_call(let):
        let.define("client", make_client)
        assert let.client.ping()

Only the call phase is repeated. Fixtures are set up once; values kept in the
``let`` store are recomputed after each failure unless ``clear_let=False``.
"""
import logging
from collections.abc import Iterator
from typing import Any, Dict, Optional

import pytest

from .memo import LetStore
from .repeater import ConfigurationError, Repeater

logger = logging.getLogger("flaky-repeat")

let_key = pytest.StashKey[LetStore]()

MARKER_HELP = (
    "repeat(count, wait=0, verbose=None, exceptions=None, clear_let=True, callback=None): "
    "re-run the test until it passes, at most count times"
)


class ItemExample:
    """The currently running test item, as seen by the repeater"""

    def __init__(self, item: pytest.Item):
        self.item = item
        self.exception: Optional[BaseException] = None

    @property
    def location(self) -> str:
        path, lineno, _ = self.item.location
        if lineno is None:
            return path
        return f"{path}:{lineno + 1}"

    def __repr__(self) -> str:
        return f"<ItemExample {self.item.nodeid}>"


class ItemInvocation:
    """Runs the test function once, recording its failure on the example"""

    def __init__(self, item: pytest.Function, example: ItemExample, call_test):
        self.item = item
        self.example = example
        self._call_test = call_test

    def run(self) -> None:
        try:
            self._call_test(pyfuncitem=self.item)
        except pytest.xfail.Exception:
            raise
        except (Exception, pytest.fail.Exception) as e:
            self.example.exception = e


class ItemContext:
    """Memoized state and reporting for one repeated test item"""

    def __init__(self, item: pytest.Function):
        self.item = item
        self.current_example = ItemExample(item)
        # Fixture values as set up for the test; callbacks may overwrite them
        self._initial_funcargs: Dict[str, Any] = dict(item.funcargs)

    @property
    def let(self) -> LetStore:
        return self.item.stash.setdefault(let_key, LetStore())

    @property
    def funcargs(self) -> Dict[str, Any]:
        return self.item.funcargs

    def reset_memoized(self) -> None:
        self.let.clear()
        self.item.funcargs.clear()
        self.item.funcargs.update(self._initial_funcargs)

    def report(self, message: str) -> None:
        config = self.item.config
        reporter = config.pluginmanager.get_plugin("terminalreporter")
        if reporter is None:
            logger.warning(message.rstrip())
            return

        capture_manager = config.pluginmanager.get_plugin("capturemanager")
        if capture_manager is None:
            reporter.ensure_newline()
            reporter.write(message)
            return
        with capture_manager.global_and_fixture_disabled():
            reporter.ensure_newline()
            reporter.write(message)


def marker_count(marker: pytest.Mark, options: Dict[str, Any]) -> Any:
    """
    Take the attempt count out of a ``repeat`` marker

    A marker on a class or module is shared by every test under it, so the
    count has to be re-iterable: one-shot iterators and generators are refused.

    Args:
        marker: The closest ``repeat`` marker of the test
        options: The marker's keyword arguments; ``count`` is removed from it

    Raises:
        ConfigurationError: No count, more than one, or a one-shot iterator
    """
    if "count" in options:
        if marker.args:
            raise ConfigurationError("repeat marker got count both positionally and by keyword")
        count = options.pop("count")
    elif len(marker.args) == 1:
        count = marker.args[0]
    elif not marker.args:
        raise ConfigurationError("repeat marker needs a count")
    else:
        raise ConfigurationError(f"repeat marker takes one count, got {marker.args!r}")

    if isinstance(count, Iterator):
        raise ConfigurationError(
            f"repeat marker count must be an int or a re-iterable sequence such as range, got {count!r}"
        )
    return count


class RepeatPlugin:
    """Drives the call phase of marked tests through a Repeater"""

    def __init__(self, config: pytest.Config):
        self.config = config

    @pytest.hookimpl(tryfirst=True)
    def pytest_pyfunc_call(self, pyfuncitem: pytest.Function) -> Optional[bool]:
        marker = pyfuncitem.get_closest_marker("repeat")
        if marker is None:
            return None

        options = dict(marker.kwargs)
        callback = options.pop("callback", None)
        repeater = Repeater(marker_count(marker, options), **options)

        # The remaining implementations include pytest's own test-function caller
        call_test = self.config.pluginmanager.subset_hook_caller(
            "pytest_pyfunc_call", remove_plugins=[self]
        )
        context = ItemContext(pyfuncitem)
        invocation = ItemInvocation(pyfuncitem, context.current_example, call_test)

        exception = repeater.run(invocation, context, callback)
        if exception is not None:
            raise exception
        return True


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", MARKER_HELP)
    config.pluginmanager.register(RepeatPlugin(config), "flaky-repeat-runner")


@pytest.fixture
def let(request: pytest.FixtureRequest) -> LetStore:
    """Memoized values of the current test, cleared between repeated attempts"""
    return request.node.stash.setdefault(let_key, LetStore())
