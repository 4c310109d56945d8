from app.db.mongo import get_billing_addresses_collection, get_otp_collection, get_users_collection
from app.core.security import hash_password


async def otp_for(token):
    record = await get_otp_collection().find_one({"token": token})
    return record["otp"]


async def verified_token(api, purpose, **target):
    response = await api.post("/api/auth/send-otp", json={"purpose": purpose, **target})
    assert response.status_code == 200, response.json()
    token = response.json()["token"]
    verify = await api.post("/api/auth/verify-otp", json={"token": token, "otp": await otp_for(token)})
    assert verify.status_code == 200
    return token


async def test_register_login_logout(api):
    token = await verified_token(api, "registration", email="asha@example.com")

    registered = await api.post("/api/auth/register", json={
        "name": "Asha",
        "email": "asha@example.com",
        "phone": "9876543210",
        "token": token,
    })
    assert registered.status_code == 200
    user_id = registered.json()["user"]["id"]
    assert user_id.startswith("US") and user_id.endswith("1")

    login_token = await verified_token(api, "login", email_or_phone="9876543210")
    login = await api.post("/api/auth/login", json={"email_or_phone": "9876543210", "token": login_token})
    assert login.status_code == 200

    session = (await api.get("/api/auth/session")).json()
    assert session["is_logged_in"] is True
    assert session["user"]["id"] == user_id

    profile = await api.get("/api/profile/")
    assert profile.json()["user"]["email"] == "asha@example.com"

    await api.post("/api/auth/logout")
    assert (await api.get("/api/auth/session")).json()["is_logged_in"] is False
    assert (await api.get("/api/profile/")).status_code == 401


async def test_registration_requires_verified_otp(api):
    sent = await api.post("/api/auth/send-otp", json={"purpose": "registration", "email": "asha@example.com"})

    response = await api.post("/api/auth/register", json={
        "name": "Asha",
        "email": "asha@example.com",
        "phone": "9876543210",
        "token": sent.json()["token"],
    })

    assert response.status_code == 400
    assert await get_users_collection().count_documents({}) == 0


async def test_business_registration_stores_billing_address(api):
    token = await verified_token(api, "registration", email="shop@example.com")

    response = await api.post("/api/auth/register", json={
        "name": "Ravi",
        "email": "shop@example.com",
        "phone": "9876500000",
        "token": token,
        "is_business_account": True,
        "business_name": "Ravi Stores",
        "gst_number": "09aaach7409r1zz",
        "billing_address": {
            "house_no": "4",
            "line1": "Civil Lines",
            "city": "Prayagraj",
            "district": "Prayagraj",
            "state": "Uttar Pradesh",
            "pincode": "211001",
        },
    })

    assert response.status_code == 200
    user_id = response.json()["user"]["id"]
    assert user_id.startswith("BS")
    billing = await get_billing_addresses_collection().find_one({"user_id": user_id})
    assert billing["_id"] == f"BA-{user_id}"
    user = await get_users_collection().find_one({"_id": user_id})
    assert user["gst_number"] == "09AAACH7409R1ZZ"


async def test_invalid_gstin_rejected(api):
    token = await verified_token(api, "registration", email="shop@example.com")

    response = await api.post("/api/auth/register", json={
        "name": "Ravi",
        "email": "shop@example.com",
        "phone": "9876500000",
        "token": token,
        "is_business_account": True,
        "business_name": "Ravi Stores",
        "gst_number": "NOT-A-GSTIN",
        "billing_address": {"house_no": "4", "line1": "x", "city": "y", "district": "z", "state": "UP", "pincode": "211001"},
    })

    assert response.status_code == 400


async def test_registration_otp_for_existing_email_conflicts(api, seed_user):
    await seed_user()
    response = await api.post("/api/auth/send-otp", json={"purpose": "registration", "email": "asha@example.com"})
    assert response.status_code == 409


async def test_login_otp_for_unknown_user(api):
    response = await api.post("/api/auth/send-otp", json={"purpose": "login", "email_or_phone": "nobody@example.com"})
    assert response.status_code == 404


async def test_suspended_account_cannot_login(api, seed_user):
    await seed_user(suspended=True)
    token = await verified_token(api, "login", email_or_phone="asha@example.com")

    response = await api.post("/api/auth/login", json={"email_or_phone": "asha@example.com", "token": token})

    assert response.status_code == 403


async def test_password_login(api, seed_user):
    await seed_user(password=hash_password("correct horse"))

    bad = await api.post("/api/auth/login", json={"email_or_phone": "asha@example.com", "password": "wrong pass"})
    good = await api.post("/api/auth/login", json={"email_or_phone": "asha@example.com", "password": "correct horse"})

    assert bad.status_code == 401
    assert good.status_code == 200


async def test_login_needs_a_credential(api):
    response = await api.post("/api/auth/login", json={"email_or_phone": "asha@example.com"})
    assert response.status_code == 400


async def test_password_reset(api, seed_user):
    await seed_user()

    sent = await api.post("/api/auth/forgot-password", json={"email": "asha@example.com"})
    token = sent.json()["token"]

    reset = await api.post("/api/auth/reset-password", json={
        "token": token,
        "otp": await otp_for(token),
        "new_password": "new-secret-1",
    })
    login = await api.post("/api/auth/login", json={"email_or_phone": "asha@example.com", "password": "new-secret-1"})

    assert reset.status_code == 200
    assert login.status_code == 200


async def test_password_reset_does_not_reveal_unknown_email(api):
    response = await api.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
    assert response.status_code == 200
    assert "token" not in response.json()


async def test_short_password_rejected(api):
    response = await api.post("/api/auth/reset-password", json={"token": "t", "otp": "123456", "new_password": "short"})
    assert response.status_code == 400
