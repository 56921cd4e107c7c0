"""
Test suite for the late-fee policy
"""

import pytest
from decimal import Decimal

from lending_engine.late_fees import LateFeeConfig, calculate_late_fee, late_fee_rate_for


DEFAULT_CONFIG = LateFeeConfig(grace_period_days=7, late_fee_rate=Decimal('2.5'),
                               max_late_fee_rate=Decimal('25'))


class TestLateFee:
    """Test fee computation"""
    
    @pytest.mark.parametrize("days", [0, 1, 6, 7])
    def test_no_fee_within_grace(self, days):
        assert calculate_late_fee(Decimal('1000'), days, DEFAULT_CONFIG) == Decimal('0')
    
    def test_first_day_after_grace(self):
        """One effective day is 1/30 of the monthly rate"""
        assert calculate_late_fee(Decimal('1000'), 8, DEFAULT_CONFIG) == Decimal('0.83')
    
    def test_forty_days_overdue(self):
        """33 effective days -> 1.1 months -> 2.75%"""
        assert late_fee_rate_for(40, DEFAULT_CONFIG) == Decimal('0.0275')
        assert calculate_late_fee(Decimal('1000'), 40, DEFAULT_CONFIG) == Decimal('27.50')
    
    def test_fee_is_capped(self):
        assert late_fee_rate_for(1000, DEFAULT_CONFIG) == Decimal('0.25')
        assert calculate_late_fee(Decimal('1000'), 1000, DEFAULT_CONFIG) == Decimal('250.00')
    
    def test_fee_is_monotonic_in_days(self):
        fees = [calculate_late_fee(Decimal('2647.85'), days, DEFAULT_CONFIG) for days in range(0, 400)]
        assert fees == sorted(fees)
        assert max(fees) == calculate_late_fee(Decimal('2647.85'), 10000, DEFAULT_CONFIG)
    
    def test_custom_config(self):
        config = LateFeeConfig(grace_period_days=0, late_fee_rate=Decimal('5'),
                               max_late_fee_rate=Decimal('10'))
        assert calculate_late_fee(Decimal('200'), 30, config) == Decimal('10.00')
        assert calculate_late_fee(Decimal('200'), 90, config) == Decimal('20.00')
    
    def test_zero_amount_has_no_fee(self):
        assert calculate_late_fee(Decimal('0'), 100, DEFAULT_CONFIG) == Decimal('0.00')


class TestLateFeeConfig:
    """Test config validation"""
    
    def test_negative_values_rejected(self):
        with pytest.raises(ValueError):
            LateFeeConfig(grace_period_days=-1)
        with pytest.raises(ValueError):
            LateFeeConfig(late_fee_rate=Decimal('-2'))
