# backend/tests/conftest.py
"""
Shared fixtures.

Every test gets its own in-memory SQLite database. Services commit, so a
fresh engine per test is simpler than savepoint juggling. Time is driven
by ``clock`` (a settable UTC clock) and the payment gateway / event
publisher are in-memory fakes that record what they were asked to do.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "tutormarket-test-secret-key-0123456789abcdef")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("EMAIL_PROVIDER", "console")

from datetime import time  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Any, Callable, Dict  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tutormarket.api.dependencies import (  # noqa: E402
    get_appeal_service,
    get_booking_service,
    get_db,
    get_refund_orchestrator,
)
from tutormarket.auth import create_access_token  # noqa: E402
from tutormarket.core.enums import RoleName  # noqa: E402
from tutormarket.database import Base  # noqa: E402
from tutormarket.main import app  # noqa: E402
from tutormarket.models import (  # noqa: E402
    Booking,
    BookingStatus,
    TutorAvailability,
    TutorProfile,
    User,
)
from tutormarket.services.appeal_service import AppealService  # noqa: E402
from tutormarket.services.booking_service import BookingService  # noqa: E402
from tutormarket.services.refund_orchestrator import RefundOrchestrator  # noqa: E402

from tests.helpers import (  # noqa: E402
    FRIDAY_MORNING,
    MONDAY,
    MONDAY_10AM,
    FakePaymentGateway,
    MutableClock,
    RecordingPublisher,
)


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(test_engine)
    yield test_engine
    Base.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(FRIDAY_MORNING)


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------


def _create_user(db: Session, email: str, full_name: str, role: RoleName) -> User:
    user = User(email=email, full_name=full_name, role=role.value, is_active=True)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def student(db) -> User:
    return _create_user(db, "sam.student@example.com", "Sam Student", RoleName.STUDENT)


@pytest.fixture
def other_student(db) -> User:
    return _create_user(db, "olive.other@example.com", "Olive Other", RoleName.STUDENT)


@pytest.fixture
def admin(db) -> User:
    return _create_user(db, "ada.admin@example.com", "Ada Admin", RoleName.ADMIN)


@pytest.fixture
def tutor_user(db) -> User:
    return _create_user(db, "tom.tutor@example.com", "Tom Tutor", RoleName.TUTOR)


@pytest.fixture
def tutor(db, tutor_user) -> TutorProfile:
    """Tutor available Mondays 09:00-17:00 UTC."""
    profile = TutorProfile(user_id=tutor_user.id, bio="Maths and physics")
    db.add(profile)
    db.flush()
    db.add(
        TutorAvailability(
            tutor_id=profile.id,
            day_of_week=MONDAY,
            start_time=time(9, 0),
            end_time=time(17, 0),
        )
    )
    db.commit()
    return profile


@pytest.fixture
def other_tutor(db) -> TutorProfile:
    user = _create_user(db, "tess.tutor@example.com", "Tess Tutor", RoleName.TUTOR)
    profile = TutorProfile(user_id=user.id)
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def make_booking(db, student, tutor, clock) -> Callable[..., Booking]:
    """Insert a booking directly, bypassing the booking rules."""

    def _make(**overrides: Any) -> Booking:
        values: Dict[str, Any] = {
            "student_id": student.id,
            "tutor_id": tutor.id,
            "scheduled_at": MONDAY_10AM,
            "duration_minutes": 60,
            "price": Decimal("40.00"),
            "payment_id": "pi_test_payment",
            "status": BookingStatus.PENDING.value,
            "created_at": clock(),
        }
        values.update(overrides)
        booking = Booking(**values)
        db.add(booking)
        db.commit()
        return booking

    return _make


# ---------------------------------------------------------------------------
# Services wired to the fakes
# ---------------------------------------------------------------------------


@pytest.fixture
def refund_orchestrator(db, gateway, publisher, clock) -> RefundOrchestrator:
    return RefundOrchestrator(db, gateway, event_publisher=publisher, clock=clock)


@pytest.fixture
def booking_service(db, refund_orchestrator, publisher, clock) -> BookingService:
    return BookingService(db, refund_orchestrator, event_publisher=publisher, clock=clock)


@pytest.fixture
def appeal_service(db, clock) -> AppealService:
    return AppealService(db, clock=clock)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
def client(db, booking_service, appeal_service, refund_orchestrator):
    """TestClient whose services share the test session, fakes and clock."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_booking_service] = lambda: booking_service
    app.dependency_overrides[get_appeal_service] = lambda: appeal_service
    app.dependency_overrides[get_refund_orchestrator] = lambda: refund_orchestrator
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}


@pytest.fixture
def student_headers(student) -> Dict[str, str]:
    return _auth_headers(student)


@pytest.fixture
def other_student_headers(other_student) -> Dict[str, str]:
    return _auth_headers(other_student)


@pytest.fixture
def tutor_headers(tutor, tutor_user) -> Dict[str, str]:
    return _auth_headers(tutor_user)


@pytest.fixture
def admin_headers(admin) -> Dict[str, str]:
    return _auth_headers(admin)
