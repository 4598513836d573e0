"""
Unit tests for UserRepository authentication operations and token scopes
"""
from datetime import datetime, timedelta, timezone

import pytest
from crud.user import UserRepository
from auth_utils import (
    hash_password,
    verify_password,
    create_jwt,
    decode_jwt,
    create_client_portal_token,
    decode_client_portal_token,
)


@pytest.mark.asyncio
async def test_create_and_get_user(test_db):
    """
    Test creating a new user and retrieving it by email.

    This test verifies:
    - User creation via UserRepository.create_user
    - User retrieval via UserRepository.get_user_by_email
    - A new account starts on the trial plan with no subscription
    """
    user_repo = UserRepository(test_db)

    test_email = "Test@Example.com"
    hashed_pwd = hash_password("test_password_123")

    created_user = await user_repo.create_user({
        "email": test_email,
        "hashed_password": hashed_pwd,
        "first_name": "Ada",
    })

    assert created_user.email == test_email.lower()  # Email should be lowercased
    assert created_user.hashed_password == hashed_pwd
    assert created_user.is_active is True
    assert created_user.plan_type == "trial"
    assert created_user.subscription_active is False
    assert created_user.setup_paid is False
    assert created_user.trial_start is not None

    await test_db.commit()

    retrieved_user = await user_repo.get_user_by_email(test_email)
    assert retrieved_user is not None
    assert retrieved_user.id == created_user.id


@pytest.mark.asyncio
async def test_login_verification(test_db):
    """Password verification accepts the right password and rejects others"""
    user_repo = UserRepository(test_db)

    test_password = "secure_password_456"
    await user_repo.create_user({
        "email": "login_test@example.com",
        "hashed_password": hash_password(test_password),
    })
    await test_db.commit()

    retrieved_user = await user_repo.get_user_by_email("login_test@example.com")

    assert verify_password(test_password, retrieved_user.hashed_password) is True
    assert verify_password("wrong_password", retrieved_user.hashed_password) is False


@pytest.mark.asyncio
async def test_update_subscription_rejects_unknown_fields(test_db):
    user_repo = UserRepository(test_db)
    user = await user_repo.create_user({"email": "fields@example.com", "hashed_password": "h"})

    with pytest.raises(ValueError, match="Unsupported user fields"):
        await user_repo.update_subscription(user.id, {"is_admin": True})


@pytest.mark.asyncio
async def test_lookup_by_stripe_customer(test_db):
    user_repo = UserRepository(test_db)
    user = await user_repo.create_user({"email": "stripe@example.com", "hashed_password": "h"})
    await user_repo.update_subscription(user.id, {"stripe_customer_id": "cus_42"})

    found = await user_repo.get_user_by_stripe_customer_id("cus_42")

    assert found.id == user.id
    assert await user_repo.get_user_by_stripe_customer_id("cus_other") is None


def test_contractor_token_round_trip():
    payload = decode_jwt(create_jwt("7"))

    assert payload["sub"] == "7"
    assert payload["scope"] == "contractor"


def test_portal_token_is_not_a_contractor_token():
    portal_token = create_client_portal_token(3, "client@example.com")

    assert decode_jwt(portal_token) is None
    payload = decode_client_portal_token(portal_token)
    assert payload["sub"] == "3"
    assert payload["email"] == "client@example.com"


def test_contractor_token_is_not_a_portal_token():
    assert decode_client_portal_token(create_jwt("7")) is None


def test_garbage_token_is_rejected():
    assert decode_jwt("not-a-jwt") is None


@pytest.mark.asyncio
async def test_user_endpoint_reports_fresh_trial(async_client, signup):
    account = await signup()

    response = await async_client.get("/api/auth/user", headers=account["headers"])

    assert response.status_code == 200
    body = response.json()
    assert body["email"] == account["email"]
    assert body["plan_type"] == "trial"
    assert body["is_trial_active"] is True
    assert body["trial_days_remaining"] == 14
    assert body["can_access_app"] is True
    assert body["is_pro"] is False
    assert "hashed_password" not in body


@pytest.mark.asyncio
async def test_expired_trial_is_locked_out_of_app_data(async_client, signup, set_user_fields):
    account = await signup()
    await set_user_fields(account["user_id"], trial_start=datetime.now(timezone.utc) - timedelta(days=20))

    profile = await async_client.get("/api/auth/user", headers=account["headers"])
    projects = await async_client.get("/api/projects", headers=account["headers"])

    assert profile.status_code == 200
    assert profile.json()["can_access_app"] is False
    assert profile.json()["trial_days_remaining"] == 0
    assert projects.status_code == 402


@pytest.mark.asyncio
async def test_subscription_restores_access_after_trial(async_client, signup, set_user_fields):
    account = await signup()
    await set_user_fields(
        account["user_id"],
        trial_start=datetime.now(timezone.utc) - timedelta(days=20),
        subscription_active=True,
        plan_type="core",
    )

    response = await async_client.get("/api/projects", headers=account["headers"])

    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_login_and_logout(async_client, signup):
    account = await signup(email="returning@example.com")

    bad = await async_client.post("/api/auth/login", json={"email": account["email"], "password": "nope"})
    good = await async_client.post(
        "/api/auth/login", json={"email": "RETURNING@example.com", "password": "StrongPass123!"}
    )
    logout = await async_client.post("/api/auth/logout")

    assert bad.status_code == 401
    assert good.status_code == 200
    assert good.json()["user_id"] == str(account["user_id"])
    assert "auth_token=" in good.headers["set-cookie"]
    assert logout.json()["ok"] is True


@pytest.mark.asyncio
async def test_duplicate_signup_rejected(async_client, signup):
    await signup(email="twice@example.com")

    response = await async_client.post(
        "/api/auth/signup", json={"email": "twice@example.com", "password": "StrongPass123!"}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Email already registered"
