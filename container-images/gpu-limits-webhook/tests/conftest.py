import pytest

import mutate

from exc import NamespaceLookupError
from models import Settings


NAMESPACES = {
    "gpu-team": {"desc": "GPU team, transparent mode namespace"},
    "plain": {},
    "described": {"desc": "a namespace without any special mode"},
    "kube-system": {"desc": "transparent mode namespace"},
}


class FakeProvider:
    def __init__(self, request_timeout=None):
        self.request_timeout = request_timeout
        self.lookups = []

    def namespace_annotations(self, name):
        self.lookups.append(name)
        try:
            return NAMESPACES[name]
        except KeyError:
            raise NamespaceLookupError(f"failed to look up namespace {name}")


@pytest.fixture()
def fake_provider():
    return FakeProvider()


@pytest.fixture()
def settings():
    return Settings()


@pytest.fixture()
def app():
    app = mutate.create_app(
        PROVIDER=FakeProvider,
        TESTING=True,
    )
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def provider_class():
    return FakeProvider
