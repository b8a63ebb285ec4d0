"""Test doubles shared across test modules."""

from src.services.persistence import InMemoryAdventureStateRepository

SESSION_ID = "session-1"


class RecordingRepository(InMemoryAdventureStateRepository):
    """In-memory repository that also counts reads."""

    def __init__(self, rows=None):
        super().__init__(rows)
        self.fetches = 0

    async def fetch_state(self, session_id):
        self.fetches += 1
        return await super().fetch_state(session_id)


class FailingRepository:
    """Every read fails, as if the database were unreachable."""

    def __init__(self):
        self.fetches = 0
        self.writes = []

    async def fetch_state(self, session_id):
        self.fetches += 1
        raise ConnectionError("database unreachable")

    async def write_state(self, row_id, state):
        self.writes.append((row_id, state))


class FakeWebSocket:
    """Collects everything sent through ``send_json``."""

    def __init__(self):
        self.sent = []
        self.closed_with = None

    async def send_json(self, message):
        self.sent.append(message)

    async def accept(self):
        pass

    async def close(self, code=1000):
        self.closed_with = code

    def types(self):
        return [m["type"] for m in self.sent]
