import unittest
from datetime import timedelta

import redis
from fastapi.testclient import TestClient

from common.security import mint_internal_jwt, mint_user_jwt
from common.redis_client import RedisClient
from ledger_service.main import create_app
from ledger_service.models import utcnow
from ledger_service.records import TransactionEntry
from helpers import LedgerFixture, OTP

class FlakyRedis:
    def __init__(self):
        self.down = False

    def ping(self):
        if self.down:
            raise redis.exceptions.ConnectionError("redis unreachable")
        return True

class ApiTestCase(unittest.TestCase):
    overrides = {}

    def setUp(self):
        self.fx = LedgerFixture(**self.overrides)
        self.fx.open_account("ACC1001", 1000, upi_id="asha@grambank", phone="9876500001")
        self.fx.open_account("ACC2002", 50, upi_id="ravi@grambank", phone="9876500002")
        self.client = TestClient(create_app(services=self.fx.services, cfg=self.fx.settings))
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)
        self.fx.cleanup()

    def user(self, account_id="ACC1001"):
        return {"Authorization": f"Bearer {mint_user_jwt(account_id, cfg=self.fx.settings)}"}

    def admin(self):
        return {"Authorization": f"Bearer {mint_internal_jwt(cfg=self.fx.settings)}"}

    def send(self, body, account_id="ACC1001"):
        return self.client.post("/transactions/send", json=body, headers=self.user(account_id))

def transfer(to="ACC2002", amount=100, otp=OTP, **extra):
    return {"to_account": to, "ifsc": "GRAM0001", "amount": amount, "otp": otp, **extra}

class TestTransferEndpoints(ApiTestCase):

    def test_successful_transfer(self):
        r = self.send(transfer(amount=250.5, beneficiary_name="Ravi"))
        self.assertEqual(r.status_code, 200, r.text)
        body = r.json()
        self.assertEqual(body["message"], "Transaction successful")
        self.assertEqual((body["balance_before"], body["balance_after"]), (1000.0, 749.5))
        self.assertFalse(body["is_fraud"])
        self.assertTrue(body["txn_id"].startswith("TXN-"))
        self.assertIn("X-Trace-ID", r.headers)

        history = self.client.get("/transactions/history", headers=self.user("ACC2002")).json()
        self.assertEqual([h["type"] for h in history], ["CREDIT"])
        self.assertEqual(history[0]["amount"], 250.5)

    def test_missing_details(self):
        r = self.send({"ifsc": "GRAM0001", "amount": 10, "otp": OTP})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"], "Missing transaction details")
        self.assertEqual(r.json()["code"], "MISSING_FIELD")

    def test_invalid_amounts(self):
        for amount in (0, -5, "ten", 10.555):
            with self.subTest(amount=amount):
                r = self.send(transfer(amount=amount))
                self.assertEqual(r.status_code, 400)
                self.assertEqual(r.json()["error"], "Invalid amount")

    def test_insufficient_balance(self):
        r = self.send(transfer(amount=10000))
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"], "Insufficient balance")
        self.assertEqual(self.fx.balance("ACC1001"), 100000)

    def test_unauthenticated_and_unauthorized(self):
        r = self.client.post("/transactions/send", json=transfer())
        self.assertEqual(r.status_code, 401)
        self.assertEqual(r.json()["code"], "UNAUTHORIZED")

        r = self.send(transfer(otp="0000"))
        self.assertEqual(r.status_code, 401)
        self.assertEqual(r.json()["error"], "Invalid or expired OTP")

        r = self.client.post("/transactions/send", json=transfer(), headers=self.admin())
        self.assertEqual(r.status_code, 401)

    def test_blacklisted_destination(self):
        r = self.send(transfer(to="1234567890", amount=50))
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["message"], "🚨 Fraudulent account detected")
        self.assertTrue(body["txn_blocked"])
        self.assertEqual(body["balance_after"], 1000.0)

        alerts = self.client.get("/transactions/alerts", headers=self.user()).json()
        self.assertEqual(len(alerts), 1)
        self.assertEqual(alerts[0]["fraud_reason"], "Account reported by users")

    def test_flagged_transfer(self):
        r = self.send(transfer(amount=100, is_foreign_device=1))
        body = r.json()
        self.assertEqual(body["message"], "Transaction flagged as suspicious")
        self.assertEqual(body["fraud_reason"], "Foreign device")
        self.assertEqual(self.fx.balance("ACC1001"), 100000)

    def test_persistent_conflict_is_a_generic_server_error(self):
        self.fx.repository.compare_and_set_balance = lambda *args, **kwargs: False
        r = self.send(transfer())
        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.json()["error"], "Server error")
        self.assertEqual(self.fx.records("ACC1001"), [])

class TestUpiEndpoint(ApiTestCase):

    def test_upi_transfer(self):
        r = self.client.post("/transactions/upi/send", headers=self.user(),
                             json={"upiId": "ravi@grambank", "amount": 20, "otp": OTP})
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["receiver"], "ravi@grambank")
        self.assertTrue(r.json()["txn_id"].startswith("UPI-"))
        self.assertEqual(self.fx.balance("ACC2002"), 7000)

    def test_unknown_upi_handle(self):
        r = self.client.post("/transactions/upi/send", headers=self.user(),
                             json={"upiId": "ghost@grambank", "amount": 20, "otp": OTP})
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["error"], "Receiver UPI not found")

    def test_missing_upi_handle(self):
        r = self.client.post("/transactions/upi/send", headers=self.user(), json={"amount": 20, "otp": OTP})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"], "Missing transaction details")

class TestAccountEndpoints(ApiTestCase):

    def test_balance(self):
        self.send(transfer(amount=10))
        body = self.client.get("/transactions/balance", headers=self.user()).json()
        self.assertEqual(body["balance"], 990.0)
        self.assertEqual(body["transactions_count"], 1)
        self.assertEqual(len(body["recent"]), 1)

    def test_send_otp(self):
        r = self.client.post("/transactions/send-otp", headers=self.user())
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["otp"], OTP)
        self.assertEqual(self.fx.authorizer.issued, ["ACC1001"])

    def test_send_otp_for_unknown_account(self):
        r = self.client.post("/transactions/send-otp", headers=self.user("NOBODY"))
        self.assertEqual(r.status_code, 401)

    def test_seed_fraud_creates_alerts_without_moving_money(self):
        r = self.client.post("/transactions/seed-fraud", headers=self.user())
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["currentBalance"], 1000.0)

        alerts = self.client.get("/transactions/alerts", headers=self.user()).json()
        self.assertEqual(len(alerts), 10)
        self.assertTrue(all(a["balance_before"] == a["balance_after"] for a in alerts))
        self.assertEqual(self.fx.balance("ACC1001"), 100000)

    def test_demo_seed_and_token(self):
        r = self.client.post("/accounts/ACC3003/seed/75.25", params={"upi_id": "meena@grambank"})
        self.assertEqual(r.json()["account"]["balance"], 75.25)
        token = self.client.post("/demo/token/ACC3003").json()["access_token"]
        r = self.client.get("/transactions/balance", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(r.json()["upi_id"], "meena@grambank")

    def test_health(self):
        self.assertEqual(self.client.get("/health").json(), {"ok": True, "service": "ledger"})

    def test_health_reports_redis(self):
        backend = FlakyRedis()
        self.fx.services.redis = RedisClient("redis://unused", client=backend)
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"ok": True, "service": "ledger", "redis": "up"})

        backend.down = True
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 503)
        self.assertEqual(r.json(), {"ok": False, "service": "ledger", "redis": "down"})

class TestHistoryEndpoints(ApiTestCase):

    def setUp(self):
        super().setUp()
        start = utcnow()
        entries = [
            TransactionEntry(
                txn_id=f"TXN-{i}", account_id="ACC1001", direction="DEBIT", channel="ACCOUNT",
                counterparty="ACC2002", amount=100, balance_before=100000, balance_after=100000,
                is_fraud=i % 3 == 0, fraud_reason="Large amount" if i % 3 == 0 else None,
                created_at=start + timedelta(seconds=i),
            )
            for i in range(210)
        ]
        # insertion order differs from time order
        self.fx.repository.add_entries(entries[1::2] + entries[::2])

    def test_history_is_newest_first_and_capped(self):
        history = self.client.get("/transactions/history", headers=self.user()).json()
        self.assertEqual(len(history), 200)
        self.assertEqual([h["txn_id"] for h in history], [f"TXN-{i}" for i in range(209, 9, -1)])

    def test_alerts_only_list_fraud_records(self):
        alerts = self.client.get("/transactions/alerts", headers=self.user()).json()
        self.assertEqual(len(alerts), 70)
        self.assertTrue(all(a["is_fraud"] for a in alerts))
        self.assertEqual([a["txn_id"] for a in alerts], [f"TXN-{i}" for i in range(207, -1, -3)])

    def test_other_accounts_see_nothing(self):
        self.assertEqual(self.client.get("/transactions/history", headers=self.user("ACC2002")).json(), [])

class TestFraudRegistryEndpoints(ApiTestCase):

    def test_report_once(self):
        body = {"accountNumber": "5550001111", "ifsc": "ABCD0001", "reason": "Asked for my PIN"}
        r = self.client.post("/fraud/report", json=body, headers=self.user())
        self.assertEqual(r.json()["message"], "Fraudulent account reported successfully")
        r = self.client.post("/fraud/report", json=body, headers=self.user())
        self.assertEqual(r.json()["message"], "Account already reported")

        r = self.send(transfer(to="5550001111", amount=10))
        self.assertTrue(r.json()["txn_blocked"])

    def test_report_requires_account_number(self):
        r = self.client.post("/fraud/report", json={"reason": "spam"}, headers=self.user())
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["error"], "Missing required field 'account_number'")

    def test_listing_requires_admin_token(self):
        self.assertEqual(self.client.get("/fraud/accounts", headers=self.user()).status_code, 401)
        entries = self.client.get("/fraud/accounts", headers=self.admin()).json()
        self.assertEqual(len(entries), 10)

class TestAdminEndpoints(ApiTestCase):

    def test_freeze_and_unfreeze(self):
        r = self.client.post("/admin/accounts/ACC2002/freeze", headers=self.admin())
        self.assertEqual(r.json()["account"]["status"], "FROZEN")
        r = self.client.post("/admin/accounts/ACC2002/unfreeze", headers=self.admin())
        self.assertEqual(r.json()["account"]["status"], "ACTIVE")

    def test_freeze_unknown_account(self):
        r = self.client.post("/admin/accounts/NOBODY/freeze", headers=self.admin())
        self.assertEqual(r.status_code, 404)
        self.assertEqual(r.json()["code"], "ACCOUNT_NOT_FOUND")

    def test_user_token_cannot_freeze(self):
        r = self.client.post("/admin/accounts/ACC2002/freeze", headers=self.user())
        self.assertEqual(r.status_code, 401)

class TestFrozenEnforcement(ApiTestCase):
    overrides = {"enforce_frozen_accounts": True}

    def test_frozen_sender_gets_403(self):
        self.client.post("/admin/accounts/ACC1001/freeze", headers=self.admin())
        r = self.send(transfer())
        self.assertEqual(r.status_code, 403)
        self.assertEqual(r.json()["code"], "ACCOUNT_FROZEN")

class TestDemoEndpointsDisabled(ApiTestCase):
    overrides = {"enable_demo_endpoints": False}

    def test_demo_routes_hidden(self):
        self.assertEqual(self.client.post("/demo/token/ACC1001").status_code, 404)
        self.assertEqual(self.client.post("/transactions/seed-fraud", headers=self.user()).status_code, 404)
        r = self.client.post("/transactions/send-otp", headers=self.user())
        self.assertNotIn("otp", r.json())

if __name__ == "__main__":
    unittest.main()
