"""Tests for CreditMeter and per-call credit transactions."""

import threading

import pytest

from nodekit.node.credits import CreditMeter


class TestCreditMeter:
    def test_starts_at_declared_cost(self):
        assert CreditMeter(65).read() == 65

    def test_unset_cost(self):
        meter = CreditMeter(None)
        assert meter.read() is None
        assert meter.charge(5) == 5

    def test_charge_adds(self):
        meter = CreditMeter(10)
        assert meter.charge(5) == 15
        assert meter.read() == 15

    def test_charge_rejects_negative(self):
        with pytest.raises(ValueError):
            CreditMeter(10).charge(-1)

    def test_adjust_clamps_at_zero(self):
        meter = CreditMeter(10)
        assert meter.adjust(-25) == 0
        assert meter.read() == 0

    def test_set_replaces(self):
        meter = CreditMeter(10)
        assert meter.set(4000) == 4000

    def test_set_rejects_negative(self):
        with pytest.raises(ValueError):
            CreditMeter(10).set(-5)

    def test_reset_forces_zero(self):
        meter = CreditMeter(65)
        meter.charge(10)
        meter.reset()
        assert meter.read() == 0

    def test_negative_initial_rejected(self):
        with pytest.raises(ValueError):
            CreditMeter(-1)

    def test_concurrent_charges_are_not_lost(self):
        meter = CreditMeter(0)

        def worker():
            for _ in range(1000):
                meter.charge(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert meter.read() == 8000


class TestCreditTransaction:
    def test_commit_on_clean_exit(self):
        meter = CreditMeter(65)
        with meter.transaction() as tx:
            tx.charge(10)
            assert meter.read() == 65
        assert meter.read() == 75
        assert tx.committed

    def test_discard_on_exception(self):
        meter = CreditMeter(65)
        with pytest.raises(RuntimeError):
            with meter.transaction() as tx:
                tx.charge(10)
                raise RuntimeError("boom")
        assert meter.read() == 65
        assert not tx.committed

    def test_set_then_charge(self):
        meter = CreditMeter(10)
        with meter.transaction() as tx:
            tx.set(100)
            tx.charge(5)
        assert meter.read() == 105

    def test_charge_then_set_discards_earlier_charge(self):
        meter = CreditMeter(10)
        with meter.transaction() as tx:
            tx.charge(5)
            tx.set(100)
        assert meter.read() == 100

    def test_negative_adjust_clamped_on_commit(self):
        meter = CreditMeter(10)
        with meter.transaction() as tx:
            tx.adjust(-50)
        assert meter.read() == 0

    def test_each_transaction_commits_once(self):
        meter = CreditMeter(0)
        with meter.transaction() as first:
            first.charge(3)
        with meter.transaction() as second:
            second.charge(4)
        assert meter.read() == 7
