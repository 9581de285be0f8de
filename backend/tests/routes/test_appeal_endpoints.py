from datetime import timedelta

import pytest
import ulid

APPEALS = "/api/v1/appeals"
PENALTY_STATUS = "/api/v1/users/me/penalty-status"
REASON = "I was travelling for a family emergency and missed the cutoff."


@pytest.fixture
def penalized(db, student, clock):
    student.penalty_until = clock() + timedelta(days=7)
    db.commit()
    return student


@pytest.fixture
def appeal_id(client, penalized, student_headers):
    response = client.post(APPEALS, json={"reason": REASON}, headers=student_headers)
    assert response.status_code == 201
    return response.json()["id"]


class TestPenaltyStatus:
    def test_not_penalized(self, client, student_headers):
        body = client.get(PENALTY_STATUS, headers=student_headers).json()
        assert body == {"penalty_until": None, "is_penalized": False}

    def test_penalized(self, client, penalized, student_headers):
        body = client.get(PENALTY_STATUS, headers=student_headers).json()
        assert body["is_penalized"] is True
        assert body["penalty_until"] is not None

    def test_requires_authentication(self, client):
        assert client.get(PENALTY_STATUS).status_code == 401


class TestSubmit:
    def test_reading_requires_authentication(self, client, appeal_id):
        problem = client.get(f"{APPEALS}/{appeal_id}").json()
        assert problem["status"] == 401

    def test_appeal_can_reference_a_booking(self, client, penalized, student_headers, make_booking):
        booking = make_booking()
        response = client.post(
            APPEALS, json={"reason": REASON, "bookingId": booking.id}, headers=student_headers
        )
        body = response.json()
        assert body["status"] == "PENDING"
        assert body["user_id"] == penalized.id
        assert body["booking_id"] == booking.id

    def test_without_penalty(self, client, student_headers):
        response = client.post(APPEALS, json={"reason": REASON}, headers=student_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "NO_ACTIVE_PENALTY"

    def test_short_reason(self, client, penalized, student_headers):
        response = client.post(APPEALS, json={"reason": "sorry"}, headers=student_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_APPEAL_REASON"

    def test_second_pending_appeal(self, client, appeal_id, student_headers):
        response = client.post(APPEALS, json={"reason": REASON}, headers=student_headers)
        assert response.json()["code"] == "APPEAL_ALREADY_PENDING"


class TestReview:
    def test_approve_then_review_again(self, client, appeal_id, admin_headers, student_headers):
        response = client.patch(
            f"{APPEALS}/{appeal_id}",
            json={"status": "APPROVED", "adminNotes": "Documented emergency"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "APPROVED"
        assert body["admin_notes"] == "Documented emergency"
        assert body["reviewed_at"] is not None

        penalty = client.get(PENALTY_STATUS, headers=student_headers).json()
        assert penalty == {"penalty_until": None, "is_penalized": False}

        again = client.patch(
            f"{APPEALS}/{appeal_id}", json={"status": "REJECTED"}, headers=admin_headers
        )
        assert again.status_code == 400
        assert again.json()["code"] == "APPEAL_ALREADY_REVIEWED"

    def test_reject_keeps_penalty(self, client, appeal_id, admin_headers, student_headers):
        client.patch(f"{APPEALS}/{appeal_id}", json={"status": "rejected"}, headers=admin_headers)
        assert client.get(PENALTY_STATUS, headers=student_headers).json()["is_penalized"] is True

    @pytest.mark.parametrize("decision", ["PENDING", "MAYBE"])
    def test_invalid_decision(self, client, appeal_id, admin_headers, decision):
        response = client.patch(
            f"{APPEALS}/{appeal_id}", json={"status": decision}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_DECISION"

    @pytest.mark.parametrize("body", [{}, {"status": "APPROVED", "penaltyUntil": None}])
    def test_malformed_review_body(self, client, appeal_id, admin_headers, body):
        response = client.patch(f"{APPEALS}/{appeal_id}", json=body, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_student_cannot_review(self, client, appeal_id, student_headers):
        response = client.patch(
            f"{APPEALS}/{appeal_id}", json={"status": "APPROVED"}, headers=student_headers
        )
        assert response.status_code == 403

    def test_unknown_appeal(self, client, admin_headers):
        response = client.patch(
            f"{APPEALS}/{ulid.ULID()}", json={"status": "APPROVED"}, headers=admin_headers
        )
        assert response.status_code == 404


class TestList:
    def test_admin_sees_all_student_sees_own(
        self, client, appeal_id, admin_headers, other_student_headers
    ):
        assert client.get(APPEALS, headers=admin_headers).json()["total"] == 1
        assert client.get(APPEALS, headers=other_student_headers).json()["total"] == 0

    def test_status_filter(self, client, appeal_id, admin_headers):
        response = client.get(APPEALS, params={"status": "APPROVED"}, headers=admin_headers)
        assert response.json()["items"] == []

    def test_get_other_students_appeal(self, client, appeal_id, other_student_headers):
        response = client.get(f"{APPEALS}/{appeal_id}", headers=other_student_headers)
        assert response.status_code == 403
