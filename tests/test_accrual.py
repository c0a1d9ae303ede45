"""
Test suite for accrual arithmetic, the uint256 domain and clocks
"""

import pytest

from rebase_vault.accrual import (
    accrued_balance, accrued_interest, elapsed_since,
    interest_multiplier, max_elapsed_seconds
)
from rebase_vault.clock import ManualClock, SystemClock
from rebase_vault.errors import ArithmeticOverflow
from rebase_vault.numeric import (
    MAX_AMOUNT, UINT256_MAX, checked_add, is_max_amount, require_uint
)


P = 10 ** 18
RATE = 5 * 10 ** 10


class TestElapsed:
    """Test elapsed-time rules"""

    def test_never_settled(self):
        """Test a zero settlement time means no elapsed time"""
        assert elapsed_since(0, 1_700_000_000) == 0

    def test_elapsed(self):
        assert elapsed_since(100, 250) == 150
        assert elapsed_since(100, 100) == 0

    def test_clock_behind_settlement(self):
        """Test a reading before the last settlement is rejected"""
        with pytest.raises(ValueError):
            elapsed_since(200, 100)


class TestAccruedBalance:
    """Test the linear growth formula"""

    def test_multiplier_starts_at_precision_factor(self):
        assert interest_multiplier(RATE, 0, P) == P
        assert interest_multiplier(RATE, 10, P) == P + 10 * RATE

    def test_no_principal(self):
        assert accrued_balance(0, RATE, 1, 10 ** 9, P) == 0

    def test_no_elapsed_time(self):
        assert accrued_balance(10 ** 20, RATE, 500, 500, P) == 10 ** 20

    def test_never_settled_principal(self):
        """Test principal with last_settled == 0 does not grow"""
        assert accrued_balance(10 ** 20, RATE, 0, 10 ** 9, P) == 10 ** 20

    def test_linear_growth(self):
        """Test growth is principal * rate * elapsed / P"""
        principal = 100 * 10 ** 18
        assert accrued_balance(principal, RATE, 1000, 2000, P) == principal + 5 * 10 ** 15
        assert accrued_balance(principal, RATE, 1000, 3000, P) == principal + 10 * 10 ** 15

    def test_zero_rate(self):
        assert accrued_balance(10 ** 20, 0, 1, 10 ** 9, P) == 10 ** 20

    def test_floor_division(self):
        """Test fractional results are truncated"""
        # 3 * (10 + 1 * 1) // 10 == 33 // 10
        assert accrued_balance(3, 1, 1, 2, 10) == 3

    def test_accrued_interest(self):
        principal = 100 * 10 ** 18
        assert accrued_interest(principal, RATE, 1000, 2000, P) == 5 * 10 ** 15
        assert accrued_interest(principal, RATE, 0, 2000, P) == 0

    def test_custom_precision_factor(self):
        """Test a non-default precision factor"""
        # rate of 1/1000 per second for 10 seconds: +1%
        assert accrued_balance(1000, 1, 1, 11, 1000) == 1010

    def test_overflow(self):
        """Test an unrepresentable balance raises"""
        with pytest.raises(ArithmeticOverflow):
            accrued_balance(UINT256_MAX // 2, RATE, 1, 1 + 10 ** 8, P)

    def test_large_intermediate_product(self):
        """Test that only the result has to fit in uint256"""
        principal = UINT256_MAX // 2
        # principal * multiplier is far beyond uint256 even though the result fits
        assert accrued_balance(principal, RATE, 1, 1 + 10 ** 7, P) == principal * (P + RATE * 10 ** 7) // P


class TestMaxElapsed:
    """Test the representability bound"""

    def test_unbounded(self):
        assert max_elapsed_seconds(0, RATE, P) is None
        assert max_elapsed_seconds(10 ** 20, 0, P) is None

    def test_boundary(self):
        """Test the bound is the last representable second"""
        principal = 10 ** 60
        limit = max_elapsed_seconds(principal, RATE, P)

        assert accrued_balance(principal, RATE, 1, 1 + limit, P) <= UINT256_MAX
        with pytest.raises(ArithmeticOverflow):
            accrued_balance(principal, RATE, 1, 2 + limit, P)


class TestNumeric:
    """Test uint256 helpers"""

    def test_sentinel(self):
        assert MAX_AMOUNT == UINT256_MAX == 2 ** 256 - 1
        assert is_max_amount(MAX_AMOUNT)
        assert not is_max_amount(MAX_AMOUNT - 1)

    def test_require_uint(self):
        assert require_uint(0) == 0
        assert require_uint(UINT256_MAX) == UINT256_MAX

    def test_require_uint_rejects(self):
        with pytest.raises(ValueError, match="non-negative"):
            require_uint(-1)
        with pytest.raises(ValueError, match="integer"):
            require_uint("10")
        with pytest.raises(ValueError, match="integer"):
            require_uint(True)
        with pytest.raises(ArithmeticOverflow):
            require_uint(UINT256_MAX + 1)

    def test_checked_arithmetic(self):
        assert checked_add(1, 2) == 3
        with pytest.raises(ArithmeticOverflow):
            checked_add(UINT256_MAX, 1)


class TestClocks:
    """Test clock implementations"""

    def test_manual_clock(self):
        clock = ManualClock(100)
        assert clock.now() == 100
        assert clock.advance(50) == 150
        assert clock.set(200) == 200
        assert clock.now() == 200

    def test_manual_clock_never_goes_back(self):
        clock = ManualClock(100)
        with pytest.raises(ValueError):
            clock.set(99)
        with pytest.raises(ValueError):
            clock.advance(-1)
        with pytest.raises(ValueError):
            ManualClock(-5)

    def test_manual_clock_starts_after_zero(self):
        """Test 0 is never a reading, since it marks an unsettled account"""
        assert ManualClock().now() == 1
        with pytest.raises(ValueError, match="positive"):
            ManualClock(0)

    def test_system_clock_monotonic(self):
        clock = SystemClock()
        first = clock.now()
        second = clock.now()
        assert first > 0
        assert second >= first
