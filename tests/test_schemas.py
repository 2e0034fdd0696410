import pytest
from pydantic import ValidationError

from server.schemas import LoginRequest, SignupRequest, TaskCreate


@pytest.mark.parametrize("email", [
    "ann@x..com",
    "ann@-x.com",
    "a..nn@x.com",
    "ann@x.com.",
    "(ann)@x.com",
    "not-an-email",
])
def test_malformed_emails_are_rejected(email):
    with pytest.raises(ValidationError):
        SignupRequest(name="Ann", email=email, password="secret1")


def test_email_is_trimmed_and_lowercased():
    assert LoginRequest(email="  Ann.Lee@X.com ", password="secret1").email == "ann.lee@x.com"


def test_task_start_time_must_be_hh_mm():
    with pytest.raises(ValidationError):
        TaskCreate(title="Report", deadline="2025-03-02T12:00:00", start_time="9:30")
    assert TaskCreate(title="Report", deadline="2025-03-02T12:00:00", start_time="09:30").start_time == "09:30"
