"""
Unit Tests for request schemas
Tests for: signup role rules, offer validation, admin decisions
"""
import pytest
from pydantic import ValidationError

from app.models.account import AccountRole, ApprovalStatus
from app.schemas.account import ApprovalDecision
from app.schemas.auth import LoginRequest, SignupRequest
from app.schemas.notification import AdminMessageRequest
from app.schemas.offer import OfferCreate


class TestSignupRequest:
    def test_student_needs_college(self):
        with pytest.raises(ValidationError):
            SignupRequest(name="A", email="a@college.edu", password="password123", role="student")

    def test_vendor_needs_business_name(self):
        with pytest.raises(ValidationError):
            SignupRequest(name="B", email="b@shop.in", password="password123", role="vendor")

    def test_admin_role_is_not_self_service(self):
        with pytest.raises(ValidationError):
            SignupRequest(name="C", email="c@x.io", password="password123", role="admin")

    def test_short_password(self):
        with pytest.raises(ValidationError):
            SignupRequest(name="A", email="a@college.edu", password="short", college_name="IIT")

    def test_profile_fields_follow_role(self):
        vendor = SignupRequest(
            name="Chai Point", email="owner@chai.in", password="password123", role="vendor",
            business_name="Chai Point", college_name="ignored",
        )

        fields = vendor.profile_fields()

        assert fields["business_name"] == "Chai Point"
        assert "college_name" not in fields

    def test_default_role_is_student(self):
        signup = SignupRequest(name="A", email="a@college.edu", password="password123", college_name="IIT")
        assert signup.role == AccountRole.STUDENT


def test_login_requires_known_role():
    with pytest.raises(ValidationError):
        LoginRequest(email="a@b.co", password="x", role="faculty")


class TestOfferCreate:
    def test_code_is_uppercased(self):
        offer = OfferCreate(title="Pizza deal", discount=15, code=" pizza ")
        assert offer.code == "PIZZA"

    def test_percentage_capped(self):
        with pytest.raises(ValidationError):
            OfferCreate(title="Pizza deal", discount=101)

    def test_flat_discount_may_exceed_100(self):
        assert OfferCreate(title="Laptop deal", discount=2500, discount_type="flat").discount == 2500

    def test_discount_must_be_positive(self):
        with pytest.raises(ValidationError):
            OfferCreate(title="Free", discount=0)


def test_approval_decision_parses_status():
    assert ApprovalDecision(status="approved").status == ApprovalStatus.APPROVED
    with pytest.raises(ValidationError):
        ApprovalDecision(status="maybe")


def test_admin_message_defaults_to_everyone():
    request = AdminMessageRequest(message="Maintenance at 2am")
    assert request.role is None
    assert request.account_id is None
