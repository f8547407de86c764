from nettoria.models.user import UserStatus

from conftest import PASSWORD


async def _register(client, codes, payload, code="123456"):
    codes.queue.append(code)
    r = await client.post("/auth/register", json=payload)
    assert r.status_code == 201, r.text
    return r.json()


async def _register_and_verify(client, codes, payload):
    body = await _register(client, codes, payload)
    r = await client.post(
        "/auth/verify-phone",
        json={"userId": body["userId"], "phoneNumber": payload["phoneNumber"], "verificationCode": "123456"},
    )
    assert r.status_code == 200, r.text
    return r.json()


async def test_health(client):
    r = await client.get("/health")
    assert r.json() == {"status": "ok"}


async def test_register_sends_phone_code(client, codes, notifier, registration_payload):
    body = await _register(client, codes, registration_payload)
    assert body["status"] == "success"
    assert body["phoneNumber"] == "09121234567"
    assert body["expiresAt"]
    assert notifier.sms[-1][0] == "09121234567"
    assert "123456" in notifier.sms[-1][1]


async def test_register_duplicate_email_conflicts(client, codes, registration_payload):
    await _register(client, codes, registration_payload)
    again = dict(registration_payload, phoneNumber="09129999999", email="A@X.com")
    r = await client.post("/auth/register", json=again)
    assert r.status_code == 409
    assert r.json()["code"] == "CONFLICT"


async def test_register_duplicate_phone_conflicts(client, codes, registration_payload):
    await _register(client, codes, registration_payload)
    r = await client.post("/auth/register", json=dict(registration_payload, email="b@x.com"))
    assert r.status_code == 409


async def test_register_weak_password(client, registration_payload):
    r = await client.post("/auth/register", json=dict(registration_payload, password="password"))
    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "WEAK_PASSWORD"
    assert len(body["details"]["rules"]) == 3


async def test_register_rejects_malformed_phone(client, registration_payload):
    r = await client.post("/auth/register", json=dict(registration_payload, phoneNumber="+989121234567"))
    assert r.status_code == 422
    assert r.json()["code"] == "VALIDATION_ERROR"


async def test_register_delivery_failure(client, notifier, registration_payload):
    notifier.fail = True
    r = await client.post("/auth/register", json=registration_payload)
    assert r.status_code == 502
    body = r.json()
    assert body["code"] == "DELIVERY_FAILED"
    assert body["details"]["userId"]


async def test_resend_allowed_right_after_failed_registration_sms(client, codes, notifier, registration_payload):
    notifier.fail = True
    r = await client.post("/auth/register", json=registration_payload)
    assert r.status_code == 502
    user_id = r.json()["details"]["userId"]

    notifier.fail = False
    codes.queue.append("246810")
    r = await client.post("/auth/resend-phone-code", json={"phoneNumber": "09121234567"})
    assert r.status_code == 200
    r = await client.post(
        "/auth/verify-phone",
        json={"userId": user_id, "phoneNumber": "09121234567", "verificationCode": "246810"},
    )
    assert r.status_code == 200


async def test_verify_phone_scenario(client, codes, registration_payload):
    body = await _register(client, codes, registration_payload, code="123456")
    verify = {"userId": body["userId"], "phoneNumber": "09121234567", "verificationCode": "123456"}

    r = await client.post("/auth/verify-phone", json=verify)
    assert r.status_code == 200
    session = r.json()
    assert session["token"]
    assert session["user"]["isPhoneVerified"] is True
    assert session["user"]["status"] == "active"

    r = await client.post("/auth/verify-phone", json=verify)
    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND"


async def test_verify_phone_wrong_code(client, codes, registration_payload):
    body = await _register(client, codes, registration_payload)
    r = await client.post(
        "/auth/verify-phone",
        json={"userId": body["userId"], "phoneNumber": "09121234567", "verificationCode": "999999"},
    )
    assert r.status_code == 400
    assert r.json()["code"] == "MISMATCH"


async def test_verify_phone_after_expiry(client, codes, clock, registration_payload):
    body = await _register(client, codes, registration_payload)
    clock.advance(seconds=121)
    r = await client.post(
        "/auth/verify-phone",
        json={"userId": body["userId"], "phoneNumber": "09121234567", "verificationCode": "123456"},
    )
    assert r.status_code == 410
    assert r.json()["code"] == "EXPIRED"


async def test_verify_phone_requires_matching_phone(client, codes, registration_payload):
    body = await _register(client, codes, registration_payload)
    r = await client.post(
        "/auth/verify-phone",
        json={"userId": body["userId"], "phoneNumber": "09120000000", "verificationCode": "123456"},
    )
    assert r.status_code == 404


async def test_resend_phone_code_is_throttled(client, codes, clock, registration_payload):
    await _register(client, codes, registration_payload)
    r = await client.post("/auth/resend-phone-code", json={"phoneNumber": "09121234567"})
    assert r.status_code == 429
    assert r.json()["code"] == "RATE_LIMITED"
    assert r.headers["Retry-After"] == "60"

    clock.advance(seconds=60)
    codes.queue.append("654321")
    r = await client.post("/auth/resend-phone-code", json={"phoneNumber": "09121234567"})
    assert r.status_code == 200
    assert r.json()["expiresAt"]


async def test_resend_after_reissue_old_code_fails(client, codes, clock, registration_payload):
    body = await _register(client, codes, registration_payload, code="111111")
    clock.advance(seconds=61)
    codes.queue.append("222222")
    await client.post("/auth/resend-phone-code", json={"phoneNumber": "09121234567"})

    verify = {"userId": body["userId"], "phoneNumber": "09121234567"}
    r = await client.post("/auth/verify-phone", json=dict(verify, verificationCode="111111"))
    assert r.status_code == 400
    r = await client.post("/auth/verify-phone", json=dict(verify, verificationCode="222222"))
    assert r.status_code == 200


async def test_login_success_and_me(client, codes, registration_payload):
    await _register_and_verify(client, codes, registration_payload)
    r = await client.post("/auth/login", json={"identifier": "a@x.com", "password": PASSWORD})
    assert r.status_code == 200
    token = r.json()["token"]
    assert r.json()["user"]["lastLogin"]

    me = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "a@x.com"
    assert me.json()["firstName"] == "Ali"


async def test_login_failure_does_not_reveal_identifier(client, codes, registration_payload):
    await _register_and_verify(client, codes, registration_payload)
    wrong = await client.post("/auth/login", json={"identifier": "a@x.com", "password": "Wr0ng!Pass"})
    unknown = await client.post("/auth/login", json={"identifier": "zz@x.com", "password": PASSWORD})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()
    assert wrong.json()["code"] == "INVALID_CREDENTIALS"


async def test_login_pending_account(client, codes, registration_payload):
    await _register(client, codes, registration_payload)
    r = await client.post("/auth/login", json={"identifier": "09121234567", "password": PASSWORD})
    assert r.status_code == 403
    assert r.json()["code"] == "PHONE_NOT_VERIFIED"


async def test_me_requires_bearer_token(client):
    r = await client.get("/auth/me")
    assert r.status_code == 401
    assert r.headers["WWW-Authenticate"] == "Bearer"

    r = await client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


async def test_login_otp_flow(client, codes, make_user):
    user = await make_user(phone_number="09121112222")
    codes.queue.append("808080")
    r = await client.post("/auth/request-login-otp", json={"phoneNumber": "09121112222"})
    assert r.status_code == 200

    r = await client.post(
        "/auth/verify-login-otp", json={"phoneNumber": "09121112222", "verificationCode": "808080"}
    )
    assert r.status_code == 200
    assert r.json()["user"]["id"] == user.id

    r = await client.post(
        "/auth/verify-login-otp", json={"phoneNumber": "09121112222", "verificationCode": "808080"}
    )
    assert r.status_code == 404


async def test_request_login_otp_unknown_phone(client):
    r = await client.post("/auth/request-login-otp", json={"phoneNumber": "09120000009"})
    assert r.status_code == 404


async def test_email_verification(client, codes, notifier, make_user, auth_headers):
    user = await make_user()
    headers = auth_headers(user)
    codes.queue.append("135790")
    r = await client.post("/auth/send-email-verification", headers=headers)
    assert r.status_code == 200
    assert notifier.emails[-1][0] == user.email

    r = await client.post("/auth/verify-email", json={"verificationCode": "135790"}, headers=headers)
    assert r.status_code == 200
    me = await client.get("/auth/me", headers=headers)
    assert me.json()["isEmailVerified"] is True

    r = await client.post("/auth/send-email-verification", headers=headers)
    assert r.status_code == 400


async def test_forgot_and_reset_password(client, notifier, make_user):
    user = await make_user(email="reset@mail.com")
    r = await client.post("/auth/forgot-password", json={"email": "reset@mail.com"})
    assert r.status_code == 200
    token = notifier.last_email_token()

    r = await client.post(f"/auth/reset-password/{token}", json={"password": "N3w!Password"})
    assert r.status_code == 200
    assert r.json()["user"]["id"] == user.id

    r = await client.post("/auth/login", json={"identifier": user.email, "password": PASSWORD})
    assert r.status_code == 401
    r = await client.post("/auth/login", json={"identifier": user.email, "password": "N3w!Password"})
    assert r.status_code == 200

    r = await client.post(f"/auth/reset-password/{token}", json={"password": "An0ther!Pass"})
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID"


async def test_reset_password_link_expires(client, notifier, clock, make_user):
    await make_user(email="reset@mail.com")
    await client.post("/auth/forgot-password", json={"email": "reset@mail.com"})
    token = notifier.last_email_token()
    clock.advance(minutes=11)
    r = await client.post(f"/auth/reset-password/{token}", json={"password": "N3w!Password"})
    assert r.status_code == 410


async def test_forgot_password_unknown_email_same_answer(client, notifier):
    r = await client.post("/auth/forgot-password", json={"email": "ghost@mail.com"})
    assert r.status_code == 200
    assert notifier.emails == []


async def test_change_password(client, make_user, auth_headers):
    user = await make_user()
    headers = auth_headers(user)
    r = await client.post(
        "/auth/change-password",
        json={"currentPassword": "Wr0ng!Pass", "newPassword": "N3w!Password"},
        headers=headers,
    )
    assert r.status_code == 401

    r = await client.post(
        "/auth/change-password",
        json={"currentPassword": PASSWORD, "newPassword": "weak"},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json()["code"] == "WEAK_PASSWORD"

    r = await client.post(
        "/auth/change-password",
        json={"currentPassword": PASSWORD, "newPassword": "N3w!Password"},
        headers=headers,
    )
    assert r.status_code == 200
    r = await client.post("/auth/login", json={"identifier": user.email, "password": "N3w!Password"})
    assert r.status_code == 200


async def test_update_profile(client, make_user, auth_headers):
    user = await make_user()
    other = await make_user(national_id="0012345678")
    r = await client.patch("/auth/me", json={"firstName": "Mina", "nationalId": "1234567890"},
                           headers=auth_headers(user))
    assert r.status_code == 200
    assert r.json()["firstName"] == "Mina"
    assert r.json()["lastName"] == "Ahmadi"
    assert r.json()["nationalId"] == "1234567890"

    r = await client.patch("/auth/me", json={"nationalId": other.national_id}, headers=auth_headers(user))
    assert r.status_code == 409


async def test_suspended_user_token_is_refused(client, make_user, auth_headers):
    user = await make_user(status=UserStatus.suspended)
    r = await client.get("/auth/me", headers=auth_headers(user))
    assert r.status_code == 403
    assert r.json()["code"] == "ACCOUNT_DISABLED"
