from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import ulid

from tests.helpers import MONDAY_10AM
from tutormarket.core.exceptions import GatewayError
from tutormarket.errors import PROBLEM_MEDIA_TYPE
from tutormarket.models import BookingStatus

BOOKINGS = "/api/v1/bookings"


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.fixture
def booking_payload(tutor):
    return {
        "tutorId": tutor.id,
        "scheduledAt": "2024-03-04T10:00:00Z",
        "durationMinutes": 60,
        "price": "40.00",
        "paymentId": "pi_test_payment",
    }


class TestCreate:
    def test_student_creates_booking(self, client, student_headers, booking_payload, student):
        response = client.post(BOOKINGS, json=booking_payload, headers=student_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "PENDING"
        assert body["student_id"] == student.id
        assert _parse(body["scheduled_at"]) == MONDAY_10AM
        assert Decimal(str(body["price"])) == Decimal("40.00")
        assert body["cancellation"] is None

    def test_snake_case_body_is_accepted(self, client, student_headers, tutor):
        response = client.post(
            BOOKINGS,
            json={
                "tutor_id": tutor.id,
                "scheduled_at": "2024-03-04T10:00:00+00:00",
                "duration": 30,
                "price": 20,
            },
            headers=student_headers,
        )
        assert response.status_code == 201
        assert response.json()["duration_minutes"] == 30

    def test_conflict_is_a_problem_document(
        self, client, student_headers, other_student_headers, booking_payload
    ):
        client.post(BOOKINGS, json=booking_payload, headers=student_headers)
        overlapping = {**booking_payload, "scheduledAt": "2024-03-04T10:30:00Z"}

        response = client.post(BOOKINGS, json=overlapping, headers=other_student_headers)

        assert response.status_code == 409
        assert response.headers["content-type"].startswith(PROBLEM_MEDIA_TYPE)
        problem = response.json()
        assert problem["title"] == "Conflict"
        assert problem["code"] == "BOOKING_CONFLICT"
        assert problem["instance"] == BOOKINGS
        assert "conflicting_booking_id" in problem["errors"]

    def test_time_rule_violation(self, client, student_headers, booking_payload):
        payload = {**booking_payload, "scheduledAt": "2024-03-04T10:15:00Z"}
        response = client.post(BOOKINGS, json=payload, headers=student_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "GRANULARITY"

    def test_naive_datetime_is_rejected(self, client, student_headers, booking_payload):
        payload = {**booking_payload, "scheduledAt": "2024-03-04T10:00:00"}
        response = client.post(BOOKINGS, json=payload, headers=student_headers)
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_unknown_fields_are_rejected(self, client, student_headers, booking_payload):
        payload = {**booking_payload, "status": "CONFIRMED"}
        response = client.post(BOOKINGS, json=payload, headers=student_headers)
        assert response.status_code == 422

    def test_tutor_cannot_book(self, client, tutor_headers, booking_payload):
        response = client.post(BOOKINGS, json=booking_payload, headers=tutor_headers)
        assert response.status_code == 403

    def test_requires_authentication(self, client, booking_payload):
        response = client.post(BOOKINGS, json=booking_payload)
        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    def test_rejects_bad_token(self, client, booking_payload):
        response = client.post(
            BOOKINGS, json=booking_payload, headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Could not validate credentials"


class TestRead:
    def test_list_is_scoped(self, client, make_booking, student_headers, other_student_headers):
        booking = make_booking()

        mine = client.get(BOOKINGS, headers=student_headers).json()
        theirs = client.get(BOOKINGS, headers=other_student_headers).json()

        assert mine["total"] == 1
        assert mine["items"][0]["id"] == booking.id
        assert theirs == {"items": [], "total": 0}

    def test_list_status_filter(self, client, make_booking, admin_headers):
        make_booking()
        response = client.get(BOOKINGS, params={"status": "CONFIRMED"}, headers=admin_headers)
        assert response.json()["total"] == 0

    def test_get_booking(self, client, make_booking, tutor_headers):
        booking = make_booking()
        response = client.get(f"{BOOKINGS}/{booking.id}", headers=tutor_headers)
        assert response.status_code == 200
        assert response.json()["id"] == booking.id

    def test_get_other_students_booking(self, client, make_booking, other_student_headers):
        booking = make_booking()
        response = client.get(f"{BOOKINGS}/{booking.id}", headers=other_student_headers)
        assert response.status_code == 403

    def test_missing_booking(self, client, student_headers):
        response = client.get(f"{BOOKINGS}/{ulid.ULID()}", headers=student_headers)
        assert response.status_code == 404
        assert response.json()["detail"] == "Booking not found"


class TestUpdate:
    def test_tutor_confirms(self, client, make_booking, tutor_headers):
        booking = make_booking()
        response = client.patch(
            f"{BOOKINGS}/{booking.id}", json={"status": "confirmed"}, headers=tutor_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "CONFIRMED"

    def test_student_reschedules(self, client, make_booking, student_headers):
        booking = make_booking(status=BookingStatus.CONFIRMED.value)
        response = client.patch(
            f"{BOOKINGS}/{booking.id}",
            json={"scheduledAt": "2024-03-04T14:00:00Z"},
            headers=student_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "PENDING"
        assert _parse(body["scheduled_at"]) == MONDAY_10AM.replace(hour=14)

    @pytest.mark.parametrize(
        "body, code",
        [
            ({"status": "CONFIRMED", "scheduledAt": "2024-03-04T14:00:00Z"}, "AMBIGUOUS_UPDATE"),
            ({}, "NO_UPDATE_FIELDS"),
            ({"status": "PAID"}, "INVALID_STATUS"),
            ({"status": "REFUNDED"}, "INVALID_TRANSITION"),
        ],
    )
    def test_bad_updates(self, client, make_booking, admin_headers, body, code):
        booking = make_booking()
        response = client.patch(f"{BOOKINGS}/{booking.id}", json=body, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["code"] == code

    @pytest.mark.parametrize(
        "body",
        [
            {"scheduledAt": "2024-03-04T14:00:00"},
            {"status": "CONFIRMED", "price": "10.00"},
        ],
    )
    def test_malformed_update_body(self, client, make_booking, admin_headers, body):
        booking = make_booking()
        response = client.patch(f"{BOOKINGS}/{booking.id}", json=body, headers=admin_headers)
        assert response.status_code == 400
        assert response.headers["content-type"].startswith(PROBLEM_MEDIA_TYPE)
        problem = response.json()
        assert problem["status"] == 400
        assert problem["code"] == "validation_error"

    def test_tutor_cancel_via_status_refunds(self, client, make_booking, tutor_headers, gateway):
        booking = make_booking()
        response = client.patch(
            f"{BOOKINGS}/{booking.id}", json={"status": "CANCELLED"}, headers=tutor_headers
        )
        body = response.json()
        assert body["status"] == "REFUNDED"
        assert body["refund"]["issued"] is True
        assert len(gateway.calls) == 1


class TestCancel:
    def test_tutor_rejection_refunds_once(self, client, make_booking, tutor_headers, gateway):
        booking = make_booking()

        response = client.delete(f"{BOOKINGS}/{booking.id}", headers=tutor_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "REFUNDED"
        assert body["refund"]["issued"] is True
        assert body["refund_reference"] == body["refund"]["refund_reference"]
        assert gateway.calls[0]["reason"] == "tutor_rejected"

    def test_late_student_cancellation(self, client, make_booking, student_headers, clock):
        booking = make_booking(scheduled_at=MONDAY_10AM.replace(hour=20))
        clock.set(MONDAY_10AM)

        response = client.delete(f"{BOOKINGS}/{booking.id}", headers=student_headers)

        body = response.json()
        assert body["status"] == "CANCELLED"
        assert body["is_late_cancellation"] is True
        assert body["cancellation"]["is_late"] is True
        assert body["cancellation"]["penalty_applied"] is False
        assert body["refund"] is None

    def test_cancel_twice(self, client, make_booking, student_headers):
        booking = make_booking()
        client.delete(f"{BOOKINGS}/{booking.id}", headers=student_headers)
        response = client.delete(f"{BOOKINGS}/{booking.id}", headers=student_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_TRANSITION"

    def test_penalized_student(self, client, make_booking, student, student_headers, db, clock):
        student.penalty_until = clock() + timedelta(days=2)
        db.commit()
        booking = make_booking()

        response = client.delete(f"{BOOKINGS}/{booking.id}", headers=student_headers)

        assert response.status_code == 400
        problem = response.json()
        assert problem["code"] == "PENALTY_ACTIVE"
        assert problem["errors"]["appeal_path"] == "/api/v1/appeals"


class TestRefundRetry:
    def test_admin_retries(self, client, make_booking, tutor_headers, admin_headers, gateway):
        gateway.fail_with = GatewayError("Payment gateway unavailable", retryable=True)
        booking = make_booking()
        cancelled = client.delete(f"{BOOKINGS}/{booking.id}", headers=tutor_headers).json()
        assert cancelled["status"] == "CANCELLED"
        assert cancelled["refund"]["error"] == "Payment gateway unavailable"

        gateway.fail_with = None
        response = client.post(f"{BOOKINGS}/{booking.id}/refund", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["booking_id"] == booking.id
        assert body["refund"]["issued"] is True

    def test_non_admin_forbidden(self, client, make_booking, tutor_headers):
        booking = make_booking(status=BookingStatus.CANCELLED.value)
        response = client.post(f"{BOOKINGS}/{booking.id}/refund", headers=tutor_headers)
        assert response.status_code == 403

    def test_unknown_booking(self, client, admin_headers):
        response = client.post(f"{BOOKINGS}/{ulid.ULID()}/refund", headers=admin_headers)
        assert response.status_code == 404
