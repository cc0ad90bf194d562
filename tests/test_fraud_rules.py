import unittest
from decimal import Decimal

from ledger_service.fraud_rules import (
    evaluate, FraudVerdict, LARGE_TXN, LOCATION_JUMP, FOREIGN_DEVICE, TOO_MANY_TXNS,
)

class TestFraudRules(unittest.TestCase):

    def test_large_amount_wins_over_later_rules(self):
        verdict = evaluate(amount=900, balance_before=1000, location_delta_km=200, is_foreign_device=1)
        self.assertEqual(verdict, FraudVerdict(True, LARGE_TXN))

    def test_zero_balance_never_triggers_large_amount(self):
        verdict = evaluate(amount=50, balance_before=0, location_delta_km=0)
        self.assertFalse(verdict.is_fraud)
        self.assertIsNone(verdict.reason)

    def test_exactly_eighty_percent_is_clean(self):
        self.assertFalse(evaluate(amount=800, balance_before=1000).is_fraud)
        self.assertTrue(evaluate(amount=Decimal("800.01"), balance_before=1000).is_fraud)

    def test_location_jump_threshold(self):
        self.assertFalse(evaluate(10, 1000, location_delta_km=100).is_fraud)
        self.assertEqual(evaluate(10, 1000, location_delta_km=101).reason, LOCATION_JUMP)

    def test_location_checked_before_device(self):
        verdict = evaluate(10, 1000, location_delta_km=150, is_foreign_device=1, txns_last_24h=50)
        self.assertEqual(verdict.reason, LOCATION_JUMP)

    def test_foreign_device(self):
        self.assertEqual(evaluate(10, 1000, is_foreign_device=1).reason, FOREIGN_DEVICE)
        self.assertEqual(evaluate(10, 1000, is_foreign_device=True).reason, FOREIGN_DEVICE)
        self.assertFalse(evaluate(10, 1000, is_foreign_device=0).is_fraud)

    def test_too_many_transactions(self):
        self.assertFalse(evaluate(10, 1000, txns_last_24h=10).is_fraud)
        self.assertEqual(evaluate(10, 1000, txns_last_24h=11).reason, TOO_MANY_TXNS)

    def test_missing_telemetry_is_clean(self):
        self.assertFalse(evaluate(10, 1000).is_fraud)

    def test_unreadable_values_are_treated_as_absent(self):
        self.assertFalse(evaluate(10, 1000, location_delta_km="far", txns_last_24h="many").is_fraud)
        # an unreadable balance counts as zero, so the large-amount rule cannot fire
        self.assertFalse(evaluate(900, "n/a").is_fraud)
        self.assertFalse(evaluate(900, None).is_fraud)

    def test_same_inputs_same_verdict(self):
        verdicts = {evaluate(950, 1000, 300, 1, 20) for _ in range(20)}
        self.assertEqual(verdicts, {FraudVerdict(True, LARGE_TXN)})

if __name__ == "__main__":
    unittest.main()
