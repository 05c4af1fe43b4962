"""Pytest configuration for sigrokpy tests."""

from collections.abc import Iterator

import pytest

from sigrokpy.acquisition import Session
from sigrokpy.config import BridgeSettings
from sigrokpy.context import Context
from sigrokpy.datafeed import Datafeed, detach
from sigrokpy.device import Device
from sigrokpy.driver import DriverInstance
from sigrokpy.foreign import DemoLibrary


class Recorder:
    """Datafeed callback that keeps detached copies of every packet."""

    def __init__(self) -> None:
        self.items: list[tuple[Device, Datafeed]] = []

    def __call__(self, device: Device, packet: Datafeed) -> None:
        self.items.append((device, detach(packet)))

    @property
    def packets(self) -> list[Datafeed]:
        return [packet for _, packet in self.items]

    def of_type(self, kind: type) -> list:
        return [packet for packet in self.packets if isinstance(packet, kind)]


@pytest.fixture(autouse=True)
def _release_live_context() -> Iterator[None]:
    """Make sure no test leaks the process-wide context into the next one."""
    yield
    active = Context.active()
    if active is not None:
        active.__exit__(None, None, None)


@pytest.fixture
def demo_library() -> DemoLibrary:
    return DemoLibrary()


@pytest.fixture
def settings() -> BridgeSettings:
    # Short poll timeout keeps idle iterations fast.
    return BridgeSettings(poll_timeout_ms=5)


@pytest.fixture
def context(demo_library: DemoLibrary, settings: BridgeSettings) -> Iterator[Context]:
    with Context(library=demo_library, settings=settings) as ctx:
        yield ctx


@pytest.fixture
def instance(context: Context) -> DriverInstance:
    return context.init_driver("demo")


@pytest.fixture
def device(instance: DriverInstance) -> Device:
    return instance.scan()[0]


@pytest.fixture
def session(context: Context) -> Session:
    return Session(context, name="test")


@pytest.fixture
def attached(session: Session, device: Device) -> Session:
    """Session with the demo device attached."""
    session.add_device(device)
    return session


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
