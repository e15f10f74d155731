import pytest

from blogora import create_app
from blogora.extensions import db
from config import Config
from blogora.models import Profile
from werkzeug.security import generate_password_hash

from tests.fakes import FakeBackend


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret-key"
    BLOG_BACKEND = "sql"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    AUTO_CREATE_DB = False
    POSTS_PER_PAGE = 9


@pytest.fixture
def app():
    app = create_app(TestConfig)

    with app.app_context():
        db.drop_all()
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _make_profile(app, username, email):
    with app.app_context():
        p = Profile(
            username=username,
            email=email,
            password_hash=generate_password_hash("password123"),
        )
        db.session.add(p)
        db.session.commit()

        return p.id  # keep the id once the session is gone


@pytest.fixture
def user_id(app):
    return _make_profile(app, "testuser", "test@example.com")


@pytest.fixture
def other_user_id(app):
    return _make_profile(app, "someoneelse", "other@example.com")


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def fake_app(fake_backend):
    return create_app(TestConfig, backend=fake_backend)


@pytest.fixture
def fake_client(fake_app):
    return fake_app.test_client()
