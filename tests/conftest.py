"""
Shared pytest fixtures for the form relay tests.
"""
import pytest

from app import create_app
from tests.fakes import FakeTransport


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def make_app():
    """Build apps with the testing config and stop their mail loops afterwards."""
    apps = []

    def _make(**kwargs):
        kwargs.setdefault('transport', FakeTransport())
        app = create_app('testing', **kwargs)
        apps.append(app)
        return app

    yield _make

    for app in apps:
        app.shutdown()


@pytest.fixture
def app(make_app, transport):
    return make_app(transport=transport)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def contact_payload():
    return {
        'name': 'Asha Rao',
        'email': 'asha@example.com',
        'phone': '+91 98765 43210',
        'category': 'Anxiety',
        'age': '29',
        'message': 'I would like to book a session.\nEvenings work best.',
    }


@pytest.fixture
def signup_payload():
    return {
        'name': 'Ravi Kumar',
        'email': 'ravi@example.com',
        'phone': '9876543210',
    }


@pytest.fixture
def subdomain_payload():
    return {
        'name': 'Meera Iyer',
        'email': 'meera@example.com',
    }
