import pytest
from datetime import timedelta
from sqlalchemy import update

import server.otp as otp_module
from server.enums import OtpPurpose
from server.errors import CooldownActive, DeliveryFailed, Expired, Mismatch, NotFound
from server.models import OtpChallenge
from server.otp import OtpEngine, generate_otp

COOLDOWN = timedelta(seconds=120)


@pytest.fixture
def engine(db, mailer, clock):
    return OtpEngine(db, deliver=mailer, clock=clock)


@pytest.fixture
def fixed_codes(monkeypatch):
    codes = iter(["111111", "222222", "333333", "444444"])
    monkeypatch.setattr(otp_module, "generate_otp", lambda: next(codes))


def test_generate_otp_is_six_digits():
    for _ in range(50):
        code = generate_otp()
        assert len(code) == 6
        assert code.isdigit()


def test_generate_otp_keeps_leading_zeros(monkeypatch):
    monkeypatch.setattr(otp_module.secrets, "randbelow", lambda n: 42)
    assert generate_otp() == "000042"


def test_issue_delivers_code_and_sets_expiry(db, engine, mailer, clock, make_user):
    user = make_user(verified=False)
    challenge = engine.issue(user, OtpPurpose.signup)
    db.commit()

    assert challenge.expires_at == clock.now + timedelta(minutes=10)
    assert mailer.last_code("ann@x.com") == challenge.code

    status = engine.status(user, OtpPurpose.signup)
    assert status.exists is True
    assert status.expires_at == challenge.expires_at
    assert status.seconds_remaining(clock.now) == 600


def test_new_issue_invalidates_previous_code(db, engine, clock, make_user, fixed_codes):
    user = make_user(verified=False)
    engine.issue(user, OtpPurpose.signup)
    db.commit()
    clock.advance(seconds=5)
    engine.issue(user, OtpPurpose.signup)
    db.commit()

    with pytest.raises(Mismatch):
        engine.verify(user, OtpPurpose.signup, "111111")
    engine.verify(user, OtpPurpose.signup, "222222")


def test_code_verifies_only_once(db, engine, make_user, fixed_codes):
    user = make_user(verified=False)
    engine.issue(user, OtpPurpose.signup)
    db.commit()

    engine.verify(user, OtpPurpose.signup, "111111")
    db.commit()
    with pytest.raises(NotFound):
        engine.verify(user, OtpPurpose.signup, "111111")


def test_verify_without_challenge_is_not_found(engine, make_user):
    user = make_user()
    with pytest.raises(NotFound):
        engine.verify(user, OtpPurpose.password_reset, "123456")


def test_expired_code_fails_even_when_matching(db, engine, clock, make_user, fixed_codes):
    user = make_user(verified=False)
    engine.issue(user, OtpPurpose.signup)
    db.commit()
    clock.advance(minutes=10, seconds=1)

    with pytest.raises(Expired):
        engine.verify(user, OtpPurpose.signup, "111111")
    db.commit()

    row = db.query(OtpChallenge).filter(OtpChallenge.user_id == user.id).one()
    assert row.code is None and row.expires_at is None
    assert engine.status(user, OtpPurpose.signup).exists is False
    with pytest.raises(NotFound):
        engine.verify(user, OtpPurpose.signup, "111111")


def test_mismatch_does_not_extend_expiry(db, engine, clock, make_user, fixed_codes):
    user = make_user(verified=False)
    challenge = engine.issue(user, OtpPurpose.signup)
    db.commit()

    for _ in range(3):
        clock.advance(minutes=1)
        with pytest.raises(Mismatch):
            engine.verify(user, OtpPurpose.signup, "999999")
        db.commit()

    assert engine.status(user, OtpPurpose.signup).expires_at == challenge.expires_at


def test_purposes_are_independent(db, engine, make_user, fixed_codes):
    user = make_user()
    engine.issue(user, OtpPurpose.signup)
    engine.issue(user, OtpPurpose.password_reset)
    db.commit()

    engine.verify(user, OtpPurpose.password_reset, "222222")
    assert engine.status(user, OtpPurpose.signup).exists is True


def test_cooldown_blocks_second_issue_until_elapsed(db, engine, clock, make_user):
    user = make_user(verified=False)
    engine.issue(user, OtpPurpose.signup, cooldown=COOLDOWN)
    db.commit()

    clock.advance(seconds=30)
    with pytest.raises(CooldownActive) as excinfo:
        engine.issue(user, OtpPurpose.signup, cooldown=COOLDOWN)
    db.rollback()
    assert excinfo.value.seconds_remaining == 90

    clock.advance(seconds=91)
    engine.issue(user, OtpPurpose.signup, cooldown=COOLDOWN)
    db.commit()


def test_cooldown_survives_consumption(db, engine, clock, make_user, fixed_codes):
    user = make_user()
    engine.issue(user, OtpPurpose.password_reset, cooldown=COOLDOWN)
    engine.verify(user, OtpPurpose.password_reset, "111111")
    db.commit()

    clock.advance(seconds=10)
    with pytest.raises(CooldownActive):
        engine.issue(user, OtpPurpose.password_reset, cooldown=COOLDOWN)


def test_delivery_failure_keeps_previous_challenge(db, engine, mailer, clock, make_user, fixed_codes):
    user = make_user(verified=False)
    engine.issue(user, OtpPurpose.signup)
    db.commit()

    mailer.fail = True
    clock.advance(minutes=3)
    with pytest.raises(DeliveryFailed):
        engine.issue(user, OtpPurpose.signup)
    db.rollback()

    mailer.fail = False
    engine.verify(user, OtpPurpose.signup, "111111")


def test_delivery_exception_is_reported_as_delivery_failed(db, clock, make_user):
    def broken_deliver(to, subject, body):
        raise TimeoutError("mail API did not answer")

    user = make_user(verified=False)
    engine = OtpEngine(db, deliver=broken_deliver, clock=clock)
    with pytest.raises(DeliveryFailed):
        engine.issue(user, OtpPurpose.signup)
    db.rollback()
    assert engine.status(user, OtpPurpose.signup).exists is False


def test_status_for_unknown_user(engine):
    status = engine.status(None, OtpPurpose.signup)
    assert status.exists is False
    assert status.expires_at is None


def test_lost_compare_and_set_reports_the_winners_window(db, engine, mailer, clock, make_user, monkeypatch):
    user = make_user(verified=False)
    engine.issue(user, OtpPurpose.signup, cooldown=COOLDOWN)
    db.commit()
    clock.advance(minutes=3)

    load = engine._load

    def load_then_lose_race(user, purpose):
        row = load(user, purpose)
        # Another request issues a code after this one has read the row
        db.execute(
            update(OtpChallenge)
            .where(OtpChallenge.id == row.id)
            .values(last_issued_at=clock.now - timedelta(seconds=30))
            .execution_options(synchronize_session=False)
        )
        return row

    monkeypatch.setattr(engine, "_load", load_then_lose_race)
    with pytest.raises(CooldownActive) as excinfo:
        engine.issue(user, OtpPurpose.signup, cooldown=COOLDOWN)
    db.rollback()

    assert excinfo.value.seconds_remaining == 90
    assert len(mailer.sent) == 1


def test_lost_first_insert_is_reported_as_cooldown(db, engine, mailer, clock, make_user, monkeypatch, fixed_codes):
    user = make_user(verified=False)
    engine.issue(user, OtpPurpose.signup, cooldown=COOLDOWN)
    db.commit()

    # This request looked before the other one created the row
    racer = OtpEngine(db, deliver=mailer, clock=clock)
    monkeypatch.setattr(racer, "_load", lambda user, purpose: None)
    with pytest.raises(CooldownActive) as excinfo:
        racer.issue(user, OtpPurpose.signup, cooldown=COOLDOWN)
    db.rollback()

    assert excinfo.value.seconds_remaining == 120
    assert len(mailer.sent) == 1
    engine.verify(user, OtpPurpose.signup, "111111")


def test_cooldown_seconds_are_whole_numbers(db, engine, clock, make_user):
    user = make_user(verified=False)
    engine.issue(user, OtpPurpose.signup, cooldown=COOLDOWN)
    db.commit()

    clock.advance(seconds=10, microseconds=500000)
    with pytest.raises(CooldownActive) as excinfo:
        engine.issue(user, OtpPurpose.signup, cooldown=COOLDOWN)
    assert excinfo.value.seconds_remaining == 110
    assert isinstance(excinfo.value.seconds_remaining, int)
