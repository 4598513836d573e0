"""
HTTP-level tests for billing, the Stripe webhook and the QuickBooks endpoints
"""
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from config import settings
from main import app
from services.billing_service import get_stripe_gateway
from services.quickbooks_service import get_quickbooks_transport

WEBHOOK_SECRET = "whsec_test_secret"


def _signed(payload: dict, secret: str = WEBHOOK_SECRET):
    """Body and Stripe-Signature header the way Stripe signs webhooks"""
    body = json.dumps(payload)
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{body}".encode(), hashlib.sha256).hexdigest()
    return body, {"Stripe-Signature": f"t={timestamp},v1={signature}", "Content-Type": "application/json"}


def _event(event_type, obj):
    return {"id": "evt_test", "object": "event", "type": event_type, "data": {"object": obj}}


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", WEBHOOK_SECRET)


def _mock_quickbooks(handler):
    app.dependency_overrides[get_quickbooks_transport] = lambda: httpx.MockTransport(handler)


# Billing

@pytest.mark.asyncio
async def test_enterprise_plan_rejected_without_contacting_stripe(async_client, signup, fake_gateway):
    account = await signup()

    response = await async_client.post(
        "/api/create-subscription", json={"plan_type": "enterprise"}, headers=account["headers"]
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_plan"
    assert fake_gateway.calls == []


@pytest.mark.asyncio
async def test_create_subscription_returns_client_secret(async_client, signup, fake_gateway):
    account = await signup()

    response = await async_client.post(
        "/api/create-subscription",
        json={"plan_type": "pro", "include_onboarding": True},
        headers=account["headers"],
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["ok"] is True
    assert body["data"] == {"subscription_id": "sub_test_1", "client_secret": "sub_test_1_secret"}
    assert fake_gateway.call_names() == ["create_customer", "create_subscription"]


@pytest.mark.asyncio
async def test_expired_trial_can_still_subscribe(async_client, signup, set_user_fields):
    account = await signup()
    await set_user_fields(account["user_id"], trial_start=datetime.now(timezone.utc) - timedelta(days=30))

    response = await async_client.post(
        "/api/create-subscription", json={"plan_type": "core"}, headers=account["headers"]
    )

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_processor_failure_is_502(async_client, signup, fake_gateway, stripe_error):
    account = await signup()
    fake_gateway.fail_with = stripe_error

    response = await async_client.post(
        "/api/create-subscription", json={"plan_type": "core"}, headers=account["headers"]
    )

    assert response.status_code == 502
    assert response.json()["error"] == "payment_processor_error"


@pytest.mark.asyncio
async def test_create_subscription_requires_login(async_client):
    response = await async_client.post("/api/create-subscription", json={"plan_type": "core"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_billing_config(async_client, monkeypatch):
    monkeypatch.setattr(settings, "stripe_publishable_key", "pk_test_123")

    response = await async_client.get("/api/billing/config")

    assert response.json()["data"] == {"publishable_key": "pk_test_123"}


# Stripe webhook

@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/api/billing/webhook", "/api/webhooks/stripe"])
async def test_signed_payment_webhook_unlocks_access(
    async_client, signup, set_user_fields, fake_gateway, webhook_secret, path
):
    account = await signup()
    await set_user_fields(
        account["user_id"],
        stripe_customer_id="cus_paid",
        plan_type="pro",
        trial_start=datetime.now(timezone.utc) - timedelta(days=30),
    )
    fake_gateway.subscription_customers["sub_paid"] = "cus_paid"
    assert (await async_client.get("/api/projects", headers=account["headers"])).status_code == 402

    body, headers = _signed(_event(
        "invoice.payment_succeeded", {"id": "in_1", "object": "invoice", "subscription": "sub_paid"}
    ))
    response = await async_client.post(path, content=body, headers=headers)

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "received": True,
        "event_type": "invoice.payment_succeeded",
        "handled": True,
    }
    profile = (await async_client.get("/api/auth/user", headers=account["headers"])).json()
    assert profile["subscription_active"] is True
    assert profile["is_pro"] is True
    assert (await async_client.get("/api/projects", headers=account["headers"])).status_code == 200


@pytest.mark.asyncio
async def test_bad_signature_is_acknowledged_but_ignored(async_client, fake_gateway, webhook_secret):
    body, headers = _signed(
        _event("invoice.payment_succeeded", {"id": "in_1", "subscription": "sub_x"}), secret="whsec_wrong"
    )

    response = await async_client.post("/api/billing/webhook", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["ok"] is False
    assert response.json()["error"] == "Invalid webhook signature"
    assert fake_gateway.calls == []


@pytest.mark.asyncio
async def test_missing_signature_is_acknowledged(async_client, webhook_secret):
    response = await async_client.post("/api/billing/webhook", content=b"{}")

    assert response.status_code == 200
    assert response.json()["error"] == "Missing signature header"


@pytest.mark.asyncio
async def test_webhook_without_secret_is_acknowledged(async_client, monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", None)

    response = await async_client.post("/api/billing/webhook", content=b"{}")

    assert response.status_code == 200
    assert response.json()["ok"] is False


@pytest.mark.asyncio
async def test_stripe_outage_during_webhook_asks_for_redelivery(
    async_client, signup, set_user_fields, fake_gateway, stripe_error, webhook_secret
):
    account = await signup()
    await set_user_fields(account["user_id"], stripe_customer_id="cus_paid")
    fake_gateway.subscription_customers["sub_paid"] = "cus_paid"
    body, headers = _signed(_event("invoice.payment_succeeded", {"id": "in_1", "subscription": "sub_paid"}))

    fake_gateway.fail_with = stripe_error
    failed = await async_client.post("/api/billing/webhook", content=body, headers=headers)

    assert failed.status_code == 502
    assert failed.json()["ok"] is False
    assert failed.json()["error"] == "payment_processor_error"
    profile = (await async_client.get("/api/auth/user", headers=account["headers"])).json()
    assert profile["subscription_active"] is False

    fake_gateway.fail_with = None
    redelivered = await async_client.post("/api/billing/webhook", content=body, headers=headers)

    assert redelivered.status_code == 200
    profile = (await async_client.get("/api/auth/user", headers=account["headers"])).json()
    assert profile["subscription_active"] is True


@pytest.mark.asyncio
async def test_webhook_for_unknown_customer_is_acknowledged(async_client, fake_gateway, webhook_secret):
    fake_gateway.subscription_customers["sub_ghost"] = "cus_ghost"
    body, headers = _signed(_event("invoice.payment_succeeded", {"id": "in_1", "subscription": "sub_ghost"}))

    response = await async_client.post("/api/billing/webhook", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert response.json()["handled"] is False


@pytest.mark.asyncio
async def test_unconfigured_stripe_during_webhook_asks_for_redelivery(async_client, webhook_secret):
    app.dependency_overrides[get_stripe_gateway] = lambda: None
    body, headers = _signed(_event("invoice.payment_succeeded", {"id": "in_1", "subscription": "sub_x"}))

    response = await async_client.post("/api/billing/webhook", content=body, headers=headers)

    assert response.status_code == 503
    assert response.json()["error"] == "stripe_not_configured"


# QuickBooks

@pytest.mark.asyncio
async def test_quickbooks_requires_pro(async_client, signup):
    account = await signup()

    for method, url in (("GET", "/api/quickbooks/status"), ("POST", "/api/quickbooks/connect")):
        response = await async_client.request(method, url, headers=account["headers"])
        assert response.status_code == 403
        assert response.json()["detail"]["requires_upgrade"] is True


@pytest.mark.asyncio
async def test_quickbooks_status_for_pro(async_client, signup, set_user_fields, monkeypatch):
    monkeypatch.setattr(settings, "quickbooks_client_id", None)
    account = await signup()
    await set_user_fields(account["user_id"], plan_type="pro")

    response = await async_client.get("/api/quickbooks/status", headers=account["headers"])

    assert response.status_code == 200
    assert response.json()["data"] == {
        "connected": False,
        "company_id": None,
        "realm_id": None,
        "configured": False,
    }


@pytest.mark.asyncio
async def test_connect_without_credentials_is_503(async_client, signup, set_user_fields, monkeypatch):
    monkeypatch.setattr(settings, "quickbooks_client_id", None)
    account = await signup()
    await set_user_fields(account["user_id"], plan_type="pro")

    response = await async_client.post("/api/quickbooks/connect", headers=account["headers"])

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_connect_and_callback(async_client, signup, set_user_fields, monkeypatch):
    monkeypatch.setattr(settings, "quickbooks_client_id", "qb-client")
    monkeypatch.setattr(settings, "quickbooks_client_secret", "qb-secret")
    monkeypatch.setattr(settings, "frontend_url", "http://app.test")
    account = await signup()
    await set_user_fields(account["user_id"], plan_type="pro")

    connect = await async_client.post("/api/quickbooks/connect", headers=account["headers"])
    assert connect.status_code == 200
    assert f"state={account['user_id']}" in connect.json()["data"]["auth_url"]

    _mock_quickbooks(lambda request: httpx.Response(
        200, json={"access_token": "qb-access", "refresh_token": "qb-refresh", "expires_in": 3600}
    ))
    callback = await async_client.get(
        "/api/quickbooks/callback",
        params={"code": "auth-code", "realmId": "realm-7", "state": str(account["user_id"])},
    )

    assert callback.status_code in (302, 307)
    assert callback.headers["location"] == "http://app.test/quickbooks/callback?success=true"
    status = (await async_client.get("/api/quickbooks/status", headers=account["headers"])).json()["data"]
    assert status["connected"] is True
    assert status["realm_id"] == "realm-7"


@pytest.mark.asyncio
async def test_callback_with_bad_state_redirects_with_error(async_client, monkeypatch):
    monkeypatch.setattr(settings, "frontend_url", "http://app.test")

    response = await async_client.get(
        "/api/quickbooks/callback", params={"code": "c", "realmId": "r", "state": "not-a-user"}
    )

    assert response.headers["location"] == "http://app.test/quickbooks/callback?error=invalid_state"


@pytest.mark.asyncio
async def test_sync_project_pushes_estimate(async_client, signup, set_user_fields, make_project):
    account = await signup()
    ids = await make_project(account)
    await async_client.post(
        "/api/budget",
        json={"project_id": ids["project_id"], "category": "labor", "description": "Crew", "estimated_cost": "800"},
        headers=account["headers"],
    )
    await set_user_fields(
        account["user_id"],
        plan_type="pro",
        quickbooks_connected=True,
        quickbooks_realm_id="realm-1",
        quickbooks_access_token="access",
        quickbooks_token_expiry=datetime.now(timezone.utc) + timedelta(hours=1),
    )
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        if request.url.path.endswith("/customer"):
            return httpx.Response(200, json={"Customer": {"Id": "9"}})
        return httpx.Response(200, json={"Estimate": {"Id": "321"}})

    _mock_quickbooks(handler)

    response = await async_client.post(
        f"/api/quickbooks/sync-project/{ids['project_id']}", headers=account["headers"]
    )

    assert response.status_code == 200, response.text
    assert response.json()["data"] == {"estimate_id": "321"}
    assert sent[1]["DocNumber"] == f"EST-{ids['project_id']}"
    assert [line["Description"] for line in sent[1]["Line"]] == ["Crew"]


@pytest.mark.asyncio
async def test_sync_project_when_not_connected(async_client, signup, set_user_fields, make_project):
    account = await signup()
    ids = await make_project(account)
    await set_user_fields(account["user_id"], plan_type="pro")

    response = await async_client.post(
        f"/api/quickbooks/sync-project/{ids['project_id']}", headers=account["headers"]
    )

    assert response.status_code == 400
    assert response.json()["error"] == "quickbooks_not_connected"


@pytest.mark.asyncio
async def test_sync_project_api_failure_is_502(async_client, signup, set_user_fields, make_project):
    account = await signup()
    ids = await make_project(account)
    await set_user_fields(
        account["user_id"],
        plan_type="pro",
        quickbooks_connected=True,
        quickbooks_realm_id="realm-1",
        quickbooks_access_token="access",
        quickbooks_token_expiry=datetime.now(timezone.utc) + timedelta(hours=1),
    )
    _mock_quickbooks(lambda request: httpx.Response(500, text="internal"))

    response = await async_client.post(
        f"/api/quickbooks/sync-project/{ids['project_id']}", headers=account["headers"]
    )

    assert response.status_code == 502


@pytest.mark.asyncio
async def test_downgraded_user_can_disconnect(async_client, signup, set_user_fields):
    account = await signup()
    await set_user_fields(
        account["user_id"],
        plan_type="core",
        quickbooks_connected=True,
        quickbooks_realm_id="realm-1",
        quickbooks_access_token="access",
    )

    response = await async_client.post("/api/quickbooks/disconnect", headers=account["headers"])
    profile = (await async_client.get("/api/auth/user", headers=account["headers"])).json()

    assert response.status_code == 200
    assert profile["quickbooks_connected"] is False
