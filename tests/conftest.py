# tests/conftest.py
import os
import sys

# Insert project root (one level above tests/)
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# fmt: off
import pytest

from admission import AdmissionController
from audit_log import AuditLog
from intake_server import Settings, create_app
# fmt: on


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def controller(clock):
    return AdmissionController(ban_duration=60.0, request_limit=4, time_window=1.0, clock=clock)


@pytest.fixture
def audit(tmp_path):
    return AuditLog(str(tmp_path / "log.txt"))


@pytest.fixture
def client(controller, audit):
    app = create_app(Settings(audit_log=audit.path), controller=controller, audit=audit)
    app.config["TESTING"] = True
    return app.test_client()
