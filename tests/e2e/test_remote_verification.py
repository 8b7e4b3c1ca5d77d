"""
E2E tests for OTP flows against the mock verification server.

The mock server app is mounted in-process through httpx's ASGI transport, so
no separate process is needed. Sandbox behaviour:
- any 12-digit id receives a request id, except 000000000000 (invalid)
  and 111111111111 (not linked)
- the only accepted code is 111111
- a request id can be submitted successfully once
"""

import pytest
import httpx
from fastapi.testclient import TestClient
from finance_notes.api.dependencies import get_verification_client
from finance_notes.domain.models import ProviderTag
from finance_notes.infrastructure.clients.verification import VerificationClient
from finance_notes.infrastructure.database.models import OtpRecord
from mock.verification_server.main import API_KEY, SANDBOX_OTP, app as mock_app

OWNER_ID = "123412341234"
CUSTOMER_ID = "999999999999"


@pytest.fixture
def otp_provider() -> ProviderTag:
    return ProviderTag.REMOTE


@pytest.fixture
def remote_client(client: TestClient) -> TestClient:
    """API client whose OTP gateway talks to the mock verification server"""
    client.app.dependency_overrides[get_verification_client] = lambda: VerificationClient(
        base_url="http://mock-verification",
        api_key=API_KEY,
        timeout=5.0,
        transport=httpx.ASGITransport(app=mock_app),
    )
    return client


@pytest.fixture
def transaction_id(remote_client: TestClient, owner_account, customer_account, headers_for) -> str:
    response = remote_client.post(
        "/v1/transactions",
        json={"customer_identity_number": CUSTOMER_ID, "amount": 1200, "customer_name": "Ravi"},
        headers=headers_for(owner_account),
    )
    assert response.status_code == 200
    return response.json()["id"]


@pytest.mark.integration
def test_customer_close_through_remote_provider(
    remote_client: TestClient, transaction_id, customer_account, headers_for, db
):
    """
    Customer requests a close, the owner reads out the sandbox code
    Expected: Transaction closed, only the request id stored locally
    """
    headers = headers_for(customer_account)

    response = remote_client.post(
        f"/v1/transactions/{transaction_id}/customer-close/request",
        json={"owner_identity_number": OWNER_ID},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["provider"] == "remote"
    assert response.json()["hint"] is None

    record = db.query(OtpRecord).one()
    assert record.provider_request_id
    assert record.code is None

    response = remote_client.post(
        f"/v1/transactions/{transaction_id}/customer-close/confirm",
        json={"owner_identity_number": OWNER_ID, "otp": "222222"},
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json()["reason"] == "invalid_code"

    response = remote_client.post(
        f"/v1/transactions/{transaction_id}/customer-close/confirm",
        json={"owner_identity_number": OWNER_ID, "otp": SANDBOX_OTP},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["transaction"]["status"] == "closed"


@pytest.mark.integration
def test_remote_identity_verification(remote_client: TestClient, create_account, headers_for):
    """
    Fresh account proves control of an identity number via the provider
    Expected: Identity bound and marked verified
    """
    headers = headers_for(create_account("Fresh User", None, verified=False))

    response = remote_client.post("/v1/identity/otp", json={"identity_number": "444455556666"}, headers=headers)
    assert response.status_code == 200

    response = remote_client.post(
        "/v1/identity/verify",
        json={"identity_number": "444455556666", "otp": SANDBOX_OTP},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["verified"] is True


@pytest.mark.integration
@pytest.mark.parametrize(
    "identity_number, reason",
    [("000000000000", "invalid_identity"), ("111111111111", "invalid_identity")],
)
def test_remote_rejects_unknown_identity(
    remote_client: TestClient, create_account, headers_for, identity_number, reason
):
    """
    Provider refuses to send a code
    Expected: 400 with the provider's refusal mapped to a local reason
    """
    headers = headers_for(create_account("Fresh User", None, verified=False))

    response = remote_client.post("/v1/identity/otp", json={"identity_number": identity_number}, headers=headers)

    assert response.status_code == 400
    assert response.json()["reason"] == reason
