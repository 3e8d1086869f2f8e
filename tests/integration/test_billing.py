"""
Integration tests for the Stripe webhook and credit endpoints.

Tests /billing/stripe/webhook, /credits, /credits/history
"""

from unittest.mock import patch

import pytest
import stripe
from fastapi.testclient import TestClient

WEBHOOK = "/api/v1/billing/stripe/webhook"


def paid_invoice(event_id: str, customer: str) -> dict:
    return {
        "id": event_id,
        "type": "invoice.paid",
        "data": {"object": {"id": "in_1", "customer": customer, "lines": {"data": [{"price": {"id": "price_pro"}}]}}},
    }


class TestStripeWebhook:

    @pytest.mark.integration
    def test_paid_invoice_adds_credits(self, client: TestClient, make_user, make_headers):
        user = make_user(credits=3, stripe_customer_id="cus_42")

        with patch("adstudio.services.billing.stripe.Webhook.construct_event", return_value=paid_invoice("evt_1", "cus_42")) as construct:
            response = client.post(WEBHOOK, content=b'{"id": "evt_1"}', headers={"Stripe-Signature": "t=1,v1=ok"})

        assert response.status_code == 200
        assert response.json() == {"received": True, "granted": True}
        assert construct.call_args[0] == (b'{"id": "evt_1"}', "t=1,v1=ok", "whsec_test")

        balance = client.get("/api/v1/credits", headers=make_headers(user))
        assert balance.json() == {"credits": 103}

    @pytest.mark.integration
    def test_redelivery_is_not_granted_twice(self, client: TestClient, make_user, make_headers):
        user = make_user(credits=0, stripe_customer_id="cus_42")

        with patch("adstudio.services.billing.stripe.Webhook.construct_event", return_value=paid_invoice("evt_1", "cus_42")):
            client.post(WEBHOOK, content=b"{}", headers={"Stripe-Signature": "sig"})
            second = client.post(WEBHOOK, content=b"{}", headers={"Stripe-Signature": "sig"})

        assert second.json() == {"received": True, "granted": False}
        history = client.get("/api/v1/credits/history", headers=make_headers(user)).json()["entries"]
        assert [e["transaction_type"] for e in history] == ["SUBSCRIPTION"]

    @pytest.mark.integration
    def test_invalid_signature(self, client: TestClient):
        error = stripe.SignatureVerificationError("Signature mismatch", "sig")
        with patch("adstudio.services.billing.stripe.Webhook.construct_event", side_effect=error):
            response = client.post(WEBHOOK, content=b"{}", headers={"Stripe-Signature": "sig"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid signature"}


class TestCredits:

    @pytest.mark.integration
    def test_history_after_generation(self, client: TestClient, auth_headers):
        client.post("/api/v1/outfits/generate", json={"avatarImageUrl": "a", "outfitImageUrl": "b"}, headers=auth_headers)

        entries = client.get("/api/v1/credits/history", headers=auth_headers).json()["entries"]

        assert entries[0]["transaction_type"] == "USE"
        assert entries[0]["amount"] == -2
        assert entries[0]["feature_type"] == "OUTFIT"
        assert entries[0]["balance_after"] == 18

    @pytest.mark.integration
    def test_balance_requires_auth(self, client: TestClient):
        assert client.get("/api/v1/credits").status_code == 401
