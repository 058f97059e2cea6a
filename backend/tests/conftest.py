# backend/tests/conftest.py
import asyncio
from collections import defaultdict

import pytest

from jamroom.services.hub import RoomHub
from jamroom.services.media import ResolvedStream, TrackUnavailable
from jamroom.services.registry import RoomRegistry
from jamroom.services.throttle import ConnectionThrottle


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeGateway:
    """
    Records everything sent and keeps track of socket room membership, so
    tests can ask which connections actually received a message.
    """

    def __init__(self):
        self.log = []
        self.rooms = defaultdict(set)

    async def send_to(self, connection_id, message):
        self.log.append({"to": {connection_id}, "message": message})

    async def broadcast_to_room(self, code, message, exclude=None):
        recipients = set(self.rooms[code]) - {exclude}
        self.log.append({"to": recipients, "room": code, "exclude": exclude, "message": message})

    async def enter_room(self, connection_id, code):
        self.rooms[code].add(connection_id)

    async def leave_room(self, connection_id, code):
        self.rooms[code].discard(connection_id)

    def received(self, connection_id, event=None):
        return [
            entry["message"] for entry in self.log
            if connection_id in entry["to"] and (event is None or entry["message"].event == event)
        ]

    def events(self, event=None):
        return [
            entry["message"] for entry in self.log
            if event is None or entry["message"].event == event
        ]

    def clear(self):
        self.log.clear()


class FakeResolver:
    """Resolves every locator unless told to fail it, crash on it or hold it until released."""

    def __init__(self):
        self.unavailable = set()
        self.failing = set()
        self.crashing = set()
        self.gates = {}
        self.calls = []

    def hold(self, locator):
        gate = asyncio.get_running_loop().create_future()
        self.gates[locator] = gate
        return gate

    async def check_available(self, locator):
        if locator in self.unavailable:
            raise TrackUnavailable(f"{locator} is unavailable")

    async def resolve(self, locator):
        self.calls.append(locator)
        gate = self.gates.pop(locator, None)
        if gate is not None:
            await gate
        if locator in self.crashing:
            raise RuntimeError(f"resolver crashed on {locator}")
        if locator in self.failing:
            raise TrackUnavailable(f"{locator} failed to resolve")
        return ResolvedStream(url=f"https://cdn.test/{locator}", mime_type="audio/mp4")


class FakeCatalog:
    def __init__(self, results=None):
        self.results = results or []
        self.queries = []

    async def search(self, query, limit=8):
        self.queries.append(query)
        return self.results


async def settle(rounds: int = 5):
    """Let scheduled tasks run up to their next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def registry(clock):
    return RoomRegistry(clock=clock)


@pytest.fixture
def hub(gateway, resolver, catalog, registry, clock):
    """
    Fresh hub per test. Throttles are generous so only the throttling tests
    hit them.
    """
    return RoomHub(
        gateway,
        resolver=resolver,
        catalog=catalog,
        registry=registry,
        search_throttle=ConnectionThrottle(100, 1.5, clock=clock),
        request_throttle=ConnectionThrottle(100, 10, clock=clock),
    )
