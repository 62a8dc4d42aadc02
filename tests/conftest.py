import os

# Configure the app for tests before anything from the package is imported
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./test.db"
os.environ["SIDE_EFFECT_BACKOFF_SECONDS"] = "0"

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from clinic.main import app
from clinic.api.deps import get_blob_store, get_broadcaster, get_notifier, rate_limit_check
from clinic.core.database import Base, get_db
from clinic.core.security import UserRole, create_token, get_password_hash
from clinic.models import Appointment, AppointmentStatus, User
from clinic.services.broadcaster import EventBroadcaster
from clinic.services.notifications import NotificationDispatcher
from clinic.services.storage import BlobStore

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_PASSWORD = "TestPassword123"
# Hashing once keeps the suite fast
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


class RecordingBroadcaster(EventBroadcaster):
    def __init__(self):
        self.events = []

    def publish(self, topic, payload):
        self.events.append((topic, payload))

    def actions(self):
        return [event.action for _, event in self.events]


class FailingBroadcaster(EventBroadcaster):
    def __init__(self):
        self.calls = 0

    def publish(self, topic, payload):
        self.calls += 1
        raise ConnectionError("realtime transport unavailable")


class RecordingNotifier(NotificationDispatcher):
    def __init__(self):
        self.messages = []
        self.codes = {}
        self.credentials = {}

    def deliver(self, address, subject, body):
        self.messages.append((address, subject, body))

    def send_one_time_code(self, address, code):
        self.codes[address] = code
        return super().send_one_time_code(address, code)

    def send_welcome_credentials(self, address, name, temporary_password, role):
        self.credentials[address] = temporary_password
        return super().send_welcome_credentials(address, name, temporary_password, role)


class FailingNotifier(NotificationDispatcher):
    def deliver(self, address, subject, body):
        raise OSError("smtp unreachable")


class MemoryBlobStore(BlobStore):
    def __init__(self):
        self.files = {}

    def save(self, filename, content):
        key = f"{len(self.files) + 1}-{filename}"
        self.files[key] = content
        return f"memory://{key}"


@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(test_db):
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def factory(name="Test User", role=UserRole.PATIENT, **overrides):
        counter["n"] += 1
        n = counter["n"]
        fields = dict(
            name=name,
            email=f"user{n}@example.com",
            phone=f"55500{n:05d}",
            password_hash=TEST_PASSWORD_HASH,
            role=role,
            profile_created=True,
        )
        fields.update(overrides)
        user = User(**fields)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return factory


@pytest.fixture
def admin(make_user):
    return make_user("Super Admin", UserRole.SUPERADMIN)


@pytest.fixture
def doctor(make_user):
    return make_user("Dana Doctor", UserRole.DOCTOR, specialization="General Medicine")


@pytest.fixture
def other_doctor(make_user):
    return make_user("Omar Other", UserRole.DOCTOR)


@pytest.fixture
def patient(make_user):
    return make_user("Jordan Patient", UserRole.PATIENT)


@pytest.fixture
def make_appointment(db):
    def factory(patient, doctor, status=AppointmentStatus.ACCEPTED, date=None, **overrides):
        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            date=date or datetime(2025, 1, 10, 9, 30),
            status=status,
            reason="Routine check-up",
            **overrides
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return factory


@pytest.fixture
def client(test_db, broadcaster, notifier, blob_store):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    async def no_rate_limit():
        return None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[rate_limit_check] = no_rate_limit

    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

    app.dependency_overrides.clear()


def auth_headers(user):
    token = create_token(user.id, user.email, user.role)
    return {"Authorization": f"Bearer {token.access_token}"}


@pytest.fixture
def headers_for():
    return auth_headers
