"""
Thetaline — Options Pricing
============================
Black-Scholes pricing, Greeks, implied volatility and moneyness for
single-leg European equity options. Every consumer prices through here.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional, Tuple

from scipy.optimize import brentq

from core.exceptions import InvalidPricingInputError
from core.models import Greeks, OptionType

MIN_TICK = 0.05             # quoted option prices never go below one tick
RISK_FREE_RATE = 0.05

# Abramowitz & Stegun 26.2.17
_AS_P = 0.2316419
_AS_B = (0.319381530, -0.356563782, 1.781477937, -1.821255978, 1.330274429)
_INV_SQRT_2PI = 1.0 / math.sqrt(2.0 * math.pi)


# =============================================================================
# Normal distribution
# =============================================================================

def normal_pdf(x: float) -> float:
    return _INV_SQRT_2PI * math.exp(-0.5 * x * x)


def normal_cdf(x: float) -> float:
    """Standard normal CDF, A&S 26.2.17 rational approximation (|err| < 7.5e-8)."""
    if x < 0:
        return 1.0 - normal_cdf(-x)
    t = 1.0 / (1.0 + _AS_P * x)
    b1, b2, b3, b4, b5 = _AS_B
    poly = t * (b1 + t * (b2 + t * (b3 + t * (b4 + t * b5))))
    return 1.0 - normal_pdf(x) * poly


# =============================================================================
# Black-Scholes Model
# =============================================================================

def _validate(S: float, K: float, T: float, r: float, sigma: float) -> None:
    for name, value in (("S", S), ("K", K), ("T", T), ("r", r), ("sigma", sigma)):
        if not math.isfinite(value):
            raise InvalidPricingInputError(name, value)
    if S <= 0:
        raise InvalidPricingInputError("S", S, f"Spot must be positive, got {S}")
    if K <= 0:
        raise InvalidPricingInputError("K", K, f"Strike must be positive, got {K}")
    if T > 0 and sigma <= 0:
        raise InvalidPricingInputError(
            "sigma", sigma, f"Volatility must be positive before expiry, got {sigma}"
        )


def _d1_d2(S: float, K: float, T: float, r: float, sigma: float) -> Tuple[float, float]:
    sqrt_T = math.sqrt(T)
    d1 = (math.log(S / K) + (r + 0.5 * sigma ** 2) * T) / (sigma * sqrt_T)
    return d1, d1 - sigma * sqrt_T


def intrinsic_value(S: float, K: float, option_type: OptionType) -> float:
    if option_type == OptionType.CALL:
        return max(S - K, 0.0)
    return max(K - S, 0.0)


def _raw_price(S: float, K: float, T: float, r: float, sigma: float,
               option_type: OptionType) -> float:
    if T <= 0:
        return intrinsic_value(S, K, option_type)

    d1, d2 = _d1_d2(S, K, T, r, sigma)
    disc = K * math.exp(-r * T)
    if option_type == OptionType.CALL:
        return S * normal_cdf(d1) - disc * normal_cdf(d2)
    return disc * normal_cdf(-d2) - S * normal_cdf(-d1)


def black_scholes_price(
    S: float,
    K: float,
    T: float,
    r: float,
    sigma: float,
    option_type: OptionType = OptionType.CALL,
) -> float:
    """
    Black-Scholes option price, floored to MIN_TICK.

    Args:
        S: Spot price (e.g., 185.20)
        K: Strike price (e.g., 189)
        T: Time to expiry in years (e.g., 7/365 for 7 days); T <= 0 prices intrinsic
        r: Risk-free rate as decimal (e.g., 0.05 for 5%)
        sigma: Volatility as decimal (e.g., 0.35 for 35%)
        option_type: CALL or PUT

    Raises:
        InvalidPricingInputError: S <= 0, K <= 0, non-finite input, or sigma <= 0 with T > 0
    """
    _validate(S, K, T, r, sigma)
    return max(_raw_price(S, K, T, r, sigma, option_type), MIN_TICK)


# =============================================================================
# Greeks Calculation
# =============================================================================

def calculate_greeks(
    S: float,
    K: float,
    T: float,
    r: float,
    sigma: float,
    option_type: OptionType = OptionType.CALL,
) -> Greeks:
    """
    Calculate the first-order Greeks for an option.

    Theta is per calendar day, vega per 1 vol point and rho per 1 rate point.
    All values rounded to 4 dp.
    """
    _validate(S, K, T, r, sigma)

    if T <= 0:
        # At expiry only delta survives
        if option_type == OptionType.CALL:
            delta = 1.0 if S > K else 0.0
        else:
            delta = -1.0 if S < K else 0.0
        return Greeks(delta=delta)

    d1, d2 = _d1_d2(S, K, T, r, sigma)
    sqrt_T = math.sqrt(T)
    n_d1 = normal_pdf(d1)
    exp_rT = math.exp(-r * T)

    if option_type == OptionType.CALL:
        delta = normal_cdf(d1)
    else:
        delta = normal_cdf(d1) - 1

    gamma = n_d1 / (S * sigma * sqrt_T)

    common_theta = -(S * n_d1 * sigma) / (2 * sqrt_T)
    if option_type == OptionType.CALL:
        theta_annual = common_theta - r * K * exp_rT * normal_cdf(d2)
        rho = K * T * exp_rT * normal_cdf(d2)
    else:
        theta_annual = common_theta + r * K * exp_rT * normal_cdf(-d2)
        rho = -K * T * exp_rT * normal_cdf(-d2)

    vega = S * sqrt_T * n_d1

    return Greeks(
        delta=round(delta, 4),
        gamma=round(gamma, 4),
        theta=round(theta_annual / 365, 4),
        vega=round(vega / 100, 4),
        rho=round(rho / 100, 4),
    )


def portfolio_greeks(positions: Iterable[Tuple[Greeks, float]]) -> Greeks:
    """Quantity-weighted sum of greeks over (greeks, quantity) pairs."""
    totals = {"delta": 0.0, "gamma": 0.0, "theta": 0.0, "vega": 0.0, "rho": 0.0}
    for greeks, qty in positions:
        for name in totals:
            totals[name] += getattr(greeks, name) * qty
    return Greeks(**{name: round(value, 4) for name, value in totals.items()})


# =============================================================================
# Moneyness
# =============================================================================

def moneyness(S: float, K: float, option_type: OptionType) -> str:
    """ITM / ATM / OTM with a +/-1% ATM band around the strike."""
    pct_diff = (S - K) / K * 100
    if option_type == OptionType.PUT:
        pct_diff = -pct_diff
    if pct_diff > 1:
        return "ITM"
    if pct_diff < -1:
        return "OTM"
    return "ATM"


# =============================================================================
# Implied Volatility
# =============================================================================

def implied_volatility(
    market_price: float,
    S: float,
    K: float,
    T: float,
    r: float = RISK_FREE_RATE,
    option_type: OptionType = OptionType.CALL,
    precision: float = 1e-6,
) -> Optional[float]:
    """
    Compute implied volatility from a market price using Brent's method.

    Returns:
        Volatility as decimal (e.g., 0.35), or None when no sigma in
        [0.001, 5.0] reproduces the price.
    """
    if market_price <= 0 or T <= 0 or S <= 0 or K <= 0:
        return None

    # Below discounted intrinsic there is no solution
    if option_type == OptionType.CALL:
        floor = max(S - K * math.exp(-r * T), 0)
    else:
        floor = max(K * math.exp(-r * T) - S, 0)
    if market_price < floor - precision:
        return None

    def objective(sigma: float) -> float:
        return _raw_price(S, K, T, r, sigma, option_type) - market_price

    try:
        iv = brentq(objective, 0.001, 5.0, xtol=precision, maxiter=200)
        return round(iv, 6)
    except (ValueError, RuntimeError):
        return None
