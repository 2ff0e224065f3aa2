import asyncio
import inspect
import logging
from pathlib import Path
import sys
from collections.abc import Iterator

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tastemixer.auth.credential_store import CredentialStore  # noqa: E402
from tastemixer.auth.store_memory import MemoryStateStore  # noqa: E402
from tastemixer.config import override_runtime_env  # noqa: E402


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    marker = pyfuncitem.get_closest_marker("asyncio")
    if marker is None:
        return None
    test_func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_func):
        return None
    fixtureinfo = getattr(pyfuncitem, "_fixtureinfo", None)
    if fixtureinfo is None:
        return None
    kwargs = {name: pyfuncitem.funcargs[name] for name in fixtureinfo.argnames}
    asyncio.run(test_func(**kwargs))
    return True


class TimeStub:
    def __init__(self, value: float = 0.0) -> None:
        self._value = value

    def advance(self, seconds: float) -> None:
        self._value += seconds

    def __call__(self) -> float:
        return self._value


class MillisClock:
    def __init__(self, value: int = 1_700_000_000_000) -> None:
        self.value = value

    def advance(self, milliseconds: int) -> None:
        self.value += milliseconds

    def __call__(self) -> int:
        return self.value


@pytest.fixture(autouse=True)
def _isolated_runtime_env(tmp_path: Path) -> Iterator[None]:
    override_runtime_env({"STATE_BACKEND": "memory", "STATE_DIR": str(tmp_path / "state")})
    yield
    override_runtime_env(None)


@pytest.fixture
def time_stub() -> TimeStub:
    return TimeStub()


@pytest.fixture
def ms_clock() -> MillisClock:
    return MillisClock()


@pytest.fixture
def state_store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def credential_store(state_store: MemoryStateStore) -> CredentialStore:
    return CredentialStore(state_store)


@pytest.fixture(autouse=True)
def _restore_package_logger() -> Iterator[None]:
    package_logger = logging.getLogger("tastemixer")
    level = package_logger.level
    handlers = list(package_logger.handlers)
    yield
    for handler in list(package_logger.handlers):
        if handler not in handlers:
            package_logger.removeHandler(handler)
            handler.close()
    package_logger.setLevel(level)
