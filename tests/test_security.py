from datetime import datetime, timedelta, timezone

import pyotp

from nettoria.core.security import (
    create_access_token, decode_access_token, generate_2fa_secret, hash_password,
    qr_png_base64_from_text, totp_uri_from_secret, validate_password, verify_password, verify_totp,
)


def test_password_policy_accepts_strong_password():
    assert validate_password("Str0ng!Pass") == []


def test_password_policy_lists_every_failed_rule():
    failures = validate_password("abc")
    assert len(failures) == 4
    assert any("8 characters" in f for f in failures)
    assert any("uppercase" in f for f in failures)
    assert any("number" in f for f in failures)
    assert any("special" in f for f in failures)


def test_password_policy_special_characters():
    assert validate_password("Abcdefg1") == ["Password must contain at least one special character"]
    assert validate_password("Abcdefg1?") == []
    # underscore is not in the accepted set
    assert validate_password("Abcdefg1_") != []


def test_hash_and_verify_password():
    hashed = hash_password("Str0ng!Pass")
    assert hashed != "Str0ng!Pass"
    assert verify_password("Str0ng!Pass", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("Str0ng!Pass", None)


def test_access_token_round_trip(settings):
    token = create_access_token("user-1", extra={"role": "user"}, settings=settings)
    payload = decode_access_token(token, settings)
    assert payload["sub"] == "user-1"
    assert payload["role"] == "user"
    assert payload["exp"] - payload["iat"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60


def test_decode_rejects_tampered_and_expired_tokens(settings):
    token = create_access_token("user-1", settings=settings)
    assert decode_access_token(token + "x", settings) is None
    expired = create_access_token("user-1", expires_minutes=-1, settings=settings)
    assert decode_access_token(expired, settings) is None


def test_totp_accepts_current_and_adjacent_steps():
    secret = generate_2fa_secret()
    now = datetime(2026, 1, 1, 12, 0, 15)
    totp = pyotp.TOTP(secret)
    aware = now.replace(tzinfo=timezone.utc)
    assert verify_totp(totp.at(aware), secret, for_time=now)
    assert verify_totp(totp.at(aware - timedelta(seconds=30)), secret, for_time=now)
    assert verify_totp(totp.at(aware + timedelta(seconds=30)), secret, for_time=now)


def test_totp_rejects_code_two_steps_away():
    secret = generate_2fa_secret()
    now = datetime(2026, 1, 1, 12, 0, 15)
    two_steps_ago = pyotp.TOTP(secret).at(now.replace(tzinfo=timezone.utc) - timedelta(seconds=60))
    assert not verify_totp(two_steps_ago, secret, for_time=now)


def test_totp_garbage_input_is_rejected():
    assert not verify_totp("abcdef", generate_2fa_secret())


def test_provisioning_uri_and_qr():
    secret = generate_2fa_secret()
    assert len(secret) == 32
    uri = totp_uri_from_secret(secret, email="a@x.com", issuer="Nettoria")
    assert uri.startswith("otpauth://totp/")
    assert "issuer=Nettoria" in uri
    assert qr_png_base64_from_text(uri).startswith("iVBOR")  # PNG magic, base64
