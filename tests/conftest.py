import bcrypt
import pytest
from botocore.stub import Stubber

from conference_abstracts import create_app
from conference_abstracts.extensions import db
from conference_abstracts.models.User import User
from conference_abstracts.models.enumerations import Role
from conference_abstracts.security import issue_admin_token, issue_user_token
from conference_abstracts.security_utils import Actor
from conference_abstracts.services.storage import get_storage

from tests.factories import ADMIN_PASSWORD


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app('testing')
    app.config['ADMIN_PASSWORD_HASH'] = bcrypt.hashpw(
        ADMIN_PASSWORD.encode('utf-8'), bcrypt.gensalt(rounds=4)
    ).decode('utf-8')
    app.config['ABSTRACT_WORD_LIMITS'] = {'innovators': 500}

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    """Create test CLI runner."""
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def create_user(app):
    """Create a test user."""
    def _create_user(email='delegate@example.com', password='delegate123', **extra):
        user = User(email=email, full_name=extra.pop('full_name', 'Test Delegate'), **extra)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return _create_user


@pytest.fixture(scope='function')
def user(create_user):
    return create_user()


@pytest.fixture(scope='function')
def other_user(create_user):
    return create_user(email='someone.else@example.com')


@pytest.fixture(scope='function')
def user_actor(user):
    return Actor(role=Role.USER, user_id=user.id, email=user.email)


@pytest.fixture(scope='function')
def other_actor(other_user):
    return Actor(role=Role.USER, user_id=other_user.id, email=other_user.email)


@pytest.fixture(scope='function')
def admin_actor(app):
    return Actor(role=Role.ADMIN, email=app.config['ADMIN_EMAIL'])


@pytest.fixture(scope='function')
def user_headers(user):
    """Return headers for an authenticated delegate."""
    return {'Authorization': f'Bearer {issue_user_token(user)}'}


@pytest.fixture(scope='function')
def other_headers(other_user):
    return {'Authorization': f'Bearer {issue_user_token(other_user)}'}


@pytest.fixture(scope='function')
def admin_headers(app):
    """Return headers for the configured admin."""
    return {'Authorization': f"Bearer {issue_admin_token(app.config['ADMIN_EMAIL'])}"}


@pytest.fixture(scope='function')
def s3_stub(app):
    """Stub the S3 client; tests queue the calls they expect."""
    storage = get_storage()
    stubber = Stubber(storage.client)
    stubber.activate()
    yield stubber
    stubber.deactivate()
