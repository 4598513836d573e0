"""
QuickBooks Online integration: OAuth2 token lifecycle and one-way sync of
customers, estimates and invoices.

Connection states per user:
    disconnected -> connected(token, expiry) -> [expired] -> refreshing
        -> connected(new token, new expiry) | disconnected
"""

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from crud.user import UserRepository

logger = logging.getLogger(__name__)

AUTHORIZATION_URL = "https://appcenter.intuit.com/connect/oauth2"
TOKEN_URL = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
SANDBOX_API_BASE = "https://sandbox-quickbooks.api.intuit.com/v3/company"
PRODUCTION_API_BASE = "https://quickbooks.api.intuit.com/v3/company"
SCOPE = "com.intuit.quickbooks.accounting"
MINOR_VERSION = "65"
REQUEST_TIMEOUT = 30.0

CLEARED_CREDENTIALS = {
    "quickbooks_connected": False,
    "quickbooks_company_id": None,
    "quickbooks_realm_id": None,
    "quickbooks_access_token": None,
    "quickbooks_refresh_token": None,
    "quickbooks_token_expiry": None,
}


class QuickBooksError(Exception):
    """Raised when the QuickBooks API rejects a request or cannot be reached."""


def _api_base() -> str:
    return SANDBOX_API_BASE if settings.quickbooks_sandbox else PRODUCTION_API_BASE


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _amount(value: Any) -> float:
    if value in (None, ""):
        return 0.0
    return float(Decimal(str(value)))


class QuickBooksClient:
    """
    Authenticated client for one company (realm), built from persisted
    credentials for the duration of a single request.
    """

    def __init__(self, access_token: str, realm_id: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.access_token = access_token
        self.realm_id = realm_id
        self._transport = transport

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> dict:
        url = f"{_api_base()}/{self.realm_id}/{path}"
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=REQUEST_TIMEOUT) as client:
                response = await client.request(
                    method, url, headers=headers, json=json, params={"minorversion": MINOR_VERSION}
                )
        except httpx.RequestError as e:
            logger.error(f"QuickBooks request to {path} failed: {e}")
            raise QuickBooksError(f"QuickBooks unreachable: {e}") from e

        if not response.is_success:
            logger.error(f"QuickBooks API returned {response.status_code} for {path}: {response.text}")
            raise QuickBooksError(f"QuickBooks API error {response.status_code}")

        return response.json()

    async def get_company_info(self) -> dict:
        data = await self._request("GET", f"companyinfo/{self.realm_id}")
        return data.get("CompanyInfo", data)

    async def create_customer(self, payload: dict) -> Optional[str]:
        data = await self._request("POST", "customer", json=payload)
        return (data.get("Customer") or {}).get("Id")

    async def create_estimate(self, payload: dict) -> Optional[str]:
        data = await self._request("POST", "estimate", json=payload)
        return (data.get("Estimate") or {}).get("Id")

    async def create_invoice(self, payload: dict) -> dict:
        data = await self._request("POST", "invoice", json=payload)
        return data.get("Invoice") or {}

    async def sync_customer(self, client) -> Optional[str]:
        """
        Push a contractor's client as a QuickBooks customer.

        Always creates; QuickBooks does not deduplicate, so a retry can leave
        a duplicate customer behind.
        """
        customer = {
            "DisplayName": client.name,
            "CompanyName": client.name,
        }
        if client.email:
            customer["PrimaryEmailAddr"] = {"Address": client.email}
        if client.phone:
            customer["PrimaryPhone"] = {"FreeFormNumber": client.phone}
        if client.address:
            customer["BillAddr"] = {"Line1": client.address, "Country": "US"}
        return await self.create_customer(customer)

    async def sync_project(self, project, client, budget_items: List[Any]) -> Optional[str]:
        """
        Push a project as an estimate, one line per budget item.

        Returns:
            The QuickBooks estimate id
        """
        customer_id = await self.sync_customer(client)
        if not customer_id:
            raise QuickBooksError("Failed to sync customer to QuickBooks")

        lines = []
        for index, item in enumerate(budget_items, start=1):
            cost = _amount(item.estimated_cost if item.estimated_cost is not None else item.actual_cost)
            lines.append({
                "LineNum": index,
                "Amount": cost,
                "DetailType": "SalesItemLineDetail",
                "Description": item.description or item.category or "Project Item",
                "SalesItemLineDetail": {
                    "ItemRef": {"value": "1", "name": "Services"},
                    "Qty": 1,
                    "UnitPrice": cost,
                },
            })

        today = date.today().isoformat()
        estimate = {
            "CustomerRef": {"value": customer_id},
            "Line": lines,
            "DocNumber": f"EST-{project.id}",
            "TxnDate": today,
            "ExpirationDate": project.due_date.isoformat() if project.due_date else today,
        }
        return await self.create_estimate(estimate)

    async def sync_milestone(self, milestone, project, client) -> dict:
        """
        Invoice a progress billing milestone.

        Returns:
            Dict with the invoice id, number, status and amount to store on the milestone
        """
        customer_id = await self.sync_customer(client)
        if not customer_id:
            raise QuickBooksError("Failed to sync customer to QuickBooks")

        amount = _amount(milestone.amount)
        payload = {
            "CustomerRef": {"value": customer_id},
            "Line": [{
                "Amount": amount,
                "DetailType": "SalesItemLineDetail",
                "Description": f"{project.name}: {milestone.title} ({milestone.percentage}%)",
                "SalesItemLineDetail": {
                    "ItemRef": {"value": "1", "name": "Services"},
                    "Qty": 1,
                    "UnitPrice": amount,
                },
            }],
        }
        if milestone.due_date:
            payload["DueDate"] = milestone.due_date.date().isoformat()
        invoice = await self.create_invoice(payload)
        balance = invoice.get("Balance")
        return {
            "quickbooks_invoice_id": invoice.get("Id"),
            "quickbooks_invoice_number": invoice.get("DocNumber"),
            "quickbooks_invoice_status": "paid" if balance == 0 else "open",
            "quickbooks_invoice_amount": Decimal(str(invoice.get("TotalAmt", amount))),
        }


class QuickBooksService:
    """
    Manages the per-user OAuth credentials and hands out QuickBooksClient
    instances. Nothing is cached across requests.
    """

    def __init__(self, db: AsyncSession, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize the service.

        Args:
            db: AsyncSession instance for database operations
            transport: Optional httpx transport (tests inject httpx.MockTransport)
        """
        self.db = db
        self.user_repo = UserRepository(db)
        self._transport = transport

    @staticmethod
    def is_configured() -> bool:
        return bool(settings.quickbooks_client_id and settings.quickbooks_client_secret)

    @staticmethod
    def get_authorization_url(user_id: int) -> str:
        params = {
            "client_id": settings.quickbooks_client_id or "",
            "scope": SCOPE,
            "redirect_uri": settings.quickbooks_redirect_uri,
            "response_type": "code",
            "state": str(user_id),
        }
        return f"{AUTHORIZATION_URL}?{urlencode(params)}"

    async def _token_request(self, form: Dict[str, str]) -> Optional[dict]:
        """
        POST to the Intuit token endpoint.

        Returns:
            Token payload, or None when the request failed
        """
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=REQUEST_TIMEOUT) as client:
                response = await client.post(
                    TOKEN_URL,
                    data=form,
                    auth=(settings.quickbooks_client_id or "", settings.quickbooks_client_secret or ""),
                    headers={"Accept": "application/json"},
                )
        except httpx.RequestError as e:
            logger.error(f"QuickBooks token request failed: {e}")
            return None

        if not response.is_success:
            logger.error(f"QuickBooks token endpoint returned {response.status_code}: {response.text}")
            return None

        token_data = response.json()
        if not token_data.get("access_token"):
            logger.error("QuickBooks token response carried no access_token")
            return None
        return token_data

    async def handle_callback(self, user_id: int, code: str, realm_id: str) -> bool:
        """
        Exchange an authorization code and store the resulting credentials.

        Returns:
            True when the user is now connected
        """
        token_data = await self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": settings.quickbooks_redirect_uri,
        })
        if token_data is None:
            return False

        expiry = datetime.now(timezone.utc) + timedelta(seconds=int(token_data.get("expires_in", 3600)))
        await self.user_repo.update_quickbooks(user_id, {
            "quickbooks_connected": True,
            "quickbooks_realm_id": realm_id,
            "quickbooks_company_id": realm_id,
            "quickbooks_access_token": token_data["access_token"],
            "quickbooks_refresh_token": token_data.get("refresh_token"),
            "quickbooks_token_expiry": expiry,
        })
        logger.info(f"QuickBooks connected for user {user_id} (realm {realm_id})")
        return True

    async def refresh_token(self, user_id: int) -> bool:
        """
        Trade the stored refresh token for a new token pair.

        The user row is read with FOR UPDATE and written back in one UPDATE,
        so concurrent refreshes serialize on PostgreSQL and the last writer
        wins elsewhere. A token that another request already refreshed is
        kept as is. On failure the stored credentials are cleared and the
        user is treated as disconnected.

        Returns:
            True when fresh credentials are persisted
        """
        user = await self.user_repo.get_user_by_id(user_id, for_update=True)
        if user is None or not user.quickbooks_refresh_token:
            return False

        expiry = user.quickbooks_token_expiry
        if (
            user.quickbooks_connected
            and user.quickbooks_access_token
            and expiry is not None
            and datetime.now(timezone.utc) < _as_utc(expiry)
        ):
            logger.info(f"QuickBooks token for user {user_id} already refreshed")
            return True

        token_data = await self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": user.quickbooks_refresh_token,
        })
        if token_data is None:
            logger.warning(f"QuickBooks token refresh failed for user {user_id}; disconnecting")
            await self.user_repo.update_quickbooks(user_id, dict(CLEARED_CREDENTIALS))
            return False

        expiry = datetime.now(timezone.utc) + timedelta(seconds=int(token_data.get("expires_in", 3600)))
        await self.user_repo.update_quickbooks(user_id, {
            "quickbooks_access_token": token_data["access_token"],
            "quickbooks_refresh_token": token_data.get("refresh_token") or user.quickbooks_refresh_token,
            "quickbooks_token_expiry": expiry,
        })
        logger.info(f"QuickBooks token refreshed for user {user_id}")
        return True

    async def get_client(self, user_id: int, now: Optional[datetime] = None) -> Optional[QuickBooksClient]:
        """
        Return a usable client, refreshing an expired token at most once.

        Returns:
            QuickBooksClient, or None when the user must reconnect
        """
        user = await self.user_repo.get_user_by_id(user_id)
        if (
            user is None
            or not user.quickbooks_connected
            or not user.quickbooks_access_token
            or not user.quickbooks_realm_id
        ):
            return None

        now = now or datetime.now(timezone.utc)
        expiry = user.quickbooks_token_expiry
        if expiry is not None and now >= _as_utc(expiry):
            if not await self.refresh_token(user_id):
                return None
            user = await self.user_repo.get_user_by_id(user_id)
            if user is None or not user.quickbooks_access_token:
                return None

        return QuickBooksClient(user.quickbooks_access_token, user.quickbooks_realm_id, transport=self._transport)

    async def disconnect(self, user_id: int) -> None:
        await self.user_repo.update_quickbooks(user_id, dict(CLEARED_CREDENTIALS))
        logger.info(f"QuickBooks disconnected for user {user_id}")


def get_quickbooks_transport() -> Optional[httpx.AsyncBaseTransport]:
    """FastAPI dependency; overridden in tests with an httpx.MockTransport."""
    return None
