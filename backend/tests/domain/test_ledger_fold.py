"""
积分余额折叠测试
"""
from datetime import datetime, timedelta
from types import SimpleNamespace

from app.domain.ledger import fold_balance, is_live

NOW = datetime(2025, 6, 1)


def _entry(amount, expires_in_days=None):
    expires_at = None if expires_in_days is None else NOW + timedelta(days=expires_in_days)
    return SimpleNamespace(amount=amount, expires_at=expires_at)


class TestFoldBalance:

    def test_sums_live_entries(self):
        assert fold_balance([_entry(10), _entry(20, 5)], NOW) == 30

    def test_excludes_expired(self):
        assert fold_balance([_entry(10), _entry(20, -1)], NOW) == 10

    def test_expiry_at_now_is_expired(self):
        assert not is_live(_entry(5, 0), NOW)

    def test_clamped_at_zero(self):
        """负向流水比对应的正向流水活得更久时，余额不为负"""
        assert fold_balance([_entry(30, -1), _entry(-30, 10)], NOW) == 0

    def test_empty(self):
        assert fold_balance([], NOW) == 0
