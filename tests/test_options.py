"""Tests for Black-Scholes pricing, greeks and implied volatility."""

import math

import pytest

from core.exceptions import InvalidPricingInputError, PricingError
from core.models import Greeks, OptionType
from strategy.options import (
    MIN_TICK,
    black_scholes_price,
    calculate_greeks,
    implied_volatility,
    intrinsic_value,
    moneyness,
    normal_cdf,
    portfolio_greeks,
)

CALL, PUT = OptionType.CALL, OptionType.PUT


class TestNormalCdf:
    def test_center(self):
        assert normal_cdf(0.0) == pytest.approx(0.5, abs=1e-7)

    @pytest.mark.parametrize("x, expected", [
        (1.0, 0.8413447),
        (1.96, 0.9750021),
        (-1.0, 0.1586553),
        (-2.5, 0.0062097),
    ])
    def test_reference_values(self, x, expected):
        assert normal_cdf(x) == pytest.approx(expected, abs=1e-6)

    def test_symmetry(self):
        assert normal_cdf(-0.7) == pytest.approx(1 - normal_cdf(0.7), abs=1e-15)


class TestPrice:
    def test_textbook_call(self):
        # Hull: S=K=100, T=1, r=5%, vol=20% -> 10.4506
        assert black_scholes_price(100, 100, 1.0, 0.05, 0.2, CALL) == pytest.approx(10.4506, abs=1e-3)

    @pytest.mark.parametrize("S, K, T", [
        (100, 100, 0.25),
        (185.2, 189, 7 / 365),
        (50, 48, 0.5),
    ])
    def test_put_call_parity(self, S, K, T):
        r, sigma = 0.05, 0.35
        call = black_scholes_price(S, K, T, r, sigma, CALL)
        put = black_scholes_price(S, K, T, r, sigma, PUT)
        assert call > MIN_TICK and put > MIN_TICK
        assert call - put == pytest.approx(S - K * math.exp(-r * T), abs=1e-6)

    def test_floor_at_min_tick(self):
        assert black_scholes_price(50, 100, 7 / 365, 0.05, 0.2, CALL) == MIN_TICK

    def test_expired_prices_intrinsic(self):
        assert black_scholes_price(110, 100, 0, 0.05, 0.35, CALL) == pytest.approx(10.0)
        assert black_scholes_price(90, 100, 0, 0.05, 0.35, PUT) == pytest.approx(10.0)

    def test_expired_out_of_money_floors(self):
        assert black_scholes_price(90, 100, 0, 0.05, 0.35, CALL) == MIN_TICK

    def test_negative_time_is_expired(self):
        assert black_scholes_price(110, 100, -0.01, 0.05, 0.35, CALL) == pytest.approx(10.0)

    def test_zero_vol_allowed_at_expiry(self):
        assert black_scholes_price(110, 100, 0, 0.05, 0.0, CALL) == pytest.approx(10.0)


class TestInvalidInputs:
    @pytest.mark.parametrize("S, K, T, sigma", [
        (0, 100, 0.1, 0.3),
        (-5, 100, 0.1, 0.3),
        (100, 0, 0.1, 0.3),
        (100, 100, 0.1, 0.0),
        (100, 100, 0.1, -0.2),
        (float("nan"), 100, 0.1, 0.3),
        (100, 100, float("inf"), 0.3),
    ])
    def test_price_rejects(self, S, K, T, sigma):
        with pytest.raises(InvalidPricingInputError):
            black_scholes_price(S, K, T, 0.05, sigma, CALL)

    def test_greeks_reject(self):
        with pytest.raises(PricingError):
            calculate_greeks(100, -1, 0.1, 0.05, 0.3, PUT)

    def test_error_carries_field(self):
        with pytest.raises(InvalidPricingInputError) as exc:
            black_scholes_price(100, 100, 0.1, 0.05, 0.0, CALL)
        assert exc.value.field == "sigma"


class TestGreeks:
    def test_expired_call_itm(self):
        assert calculate_greeks(110, 100, 0, 0.05, 0.3, CALL) == Greeks(delta=1.0)

    def test_expired_call_otm_and_atm(self):
        assert calculate_greeks(90, 100, 0, 0.05, 0.3, CALL).delta == 0.0
        assert calculate_greeks(100, 100, 0, 0.05, 0.3, CALL).delta == 0.0

    def test_expired_put(self):
        g = calculate_greeks(90, 100, 0, 0.05, 0.3, PUT)
        assert g.delta == -1.0
        assert (g.gamma, g.theta, g.vega, g.rho) == (0.0, 0.0, 0.0, 0.0)
        assert calculate_greeks(100, 100, 0, 0.05, 0.3, PUT).delta == 0.0

    def test_live_option_shape(self):
        call = calculate_greeks(100, 100, 0.25, 0.05, 0.3, CALL)
        put = calculate_greeks(100, 100, 0.25, 0.05, 0.3, PUT)
        assert 0 < call.delta < 1
        assert -1 < put.delta < 0
        assert call.delta - put.delta == pytest.approx(1.0, abs=2e-4)
        assert call.gamma == pytest.approx(put.gamma)
        assert call.vega == pytest.approx(put.vega)
        assert call.theta < 0
        assert call.rho > 0 > put.rho

    def test_units(self):
        # vega per vol point ~ price change for +1% vol
        g = calculate_greeks(100, 100, 0.25, 0.05, 0.3, CALL)
        bump = (black_scholes_price(100, 100, 0.25, 0.05, 0.31, CALL)
                - black_scholes_price(100, 100, 0.25, 0.05, 0.30, CALL))
        assert g.vega == pytest.approx(bump, rel=0.02)

    def test_rounded_to_four_places(self):
        g = calculate_greeks(123.45, 120, 0.1, 0.05, 0.27, CALL)
        for value in (g.delta, g.gamma, g.theta, g.vega, g.rho):
            assert round(value, 4) == value

    def test_portfolio_greeks(self):
        a = Greeks(delta=0.5, gamma=0.02, theta=-0.1, vega=0.2, rho=0.05)
        b = Greeks(delta=-0.4, gamma=0.03, theta=-0.05, vega=0.1, rho=-0.02)
        total = portfolio_greeks([(a, 2), (b, -1)])
        assert total.delta == pytest.approx(1.4)
        assert total.gamma == pytest.approx(0.01)
        assert total.theta == pytest.approx(-0.15)


class TestImpliedVolatility:
    def test_recovers_input_vol(self):
        price = black_scholes_price(100, 105, 0.5, 0.05, 0.42, CALL)
        assert implied_volatility(price, 100, 105, 0.5, 0.05, CALL) == pytest.approx(0.42, abs=1e-4)

    def test_put(self):
        price = black_scholes_price(100, 95, 0.25, 0.05, 0.25, PUT)
        assert implied_volatility(price, 100, 95, 0.25, 0.05, PUT) == pytest.approx(0.25, abs=1e-4)

    def test_unsolvable(self):
        assert implied_volatility(0.0, 100, 100, 0.25) is None
        assert implied_volatility(5.0, 100, 100, 0.0) is None
        # below intrinsic
        assert implied_volatility(1.0, 120, 100, 0.25, 0.05, CALL) is None


class TestHelpers:
    def test_intrinsic(self):
        assert intrinsic_value(105, 100, CALL) == 5
        assert intrinsic_value(105, 100, PUT) == 0
        assert intrinsic_value(95, 100, PUT) == 5

    @pytest.mark.parametrize("S, K, option_type, expected", [
        (105, 100, CALL, "ITM"),
        (95, 100, CALL, "OTM"),
        (100.5, 100, CALL, "ATM"),
        (105, 100, PUT, "OTM"),
        (95, 100, PUT, "ITM"),
        (99.5, 100, PUT, "ATM"),
    ])
    def test_moneyness(self, S, K, option_type, expected):
        assert moneyness(S, K, option_type) == expected
