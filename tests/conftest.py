import pytest
from fastapi.testclient import TestClient

from intakelog.main import create_app
from intakelog.repo_events import MemoryEventRepo
from intakelog.service_events import EventService


@pytest.fixture
def repo():
    return MemoryEventRepo()


@pytest.fixture
def svc(repo):
    return EventService(repo, default_owner="u1")


@pytest.fixture
def client(svc):
    with TestClient(create_app(svc)) as c:
        yield c
