"""
PerformanceMetrics Class for Portfolio Backtesting Analytics

This module provides the PerformanceMetrics class for calculating the summary
statistics of a backtest from its recorded equity curve.

Key Features:
    - Returns-based metrics (total return, CAGR, Sharpe, Sortino, Calmar)
    - Volatility (annualized standard deviation of period returns)
    - Drawdown analysis (max drawdown with peak and trough positions)
    - Distribution statistics (skewness, kurtosis, percentiles)

Design Philosophy:
    All methods are static to enable easy use without instantiation.
    Methods accept plain sequences, numpy arrays or pandas Series. The
    summary returned by calculate_all_metrics() never contains NaN: a
    degenerate input (a single point, zero variance, a zero starting
    value) yields 0.0 for the affected metric so results stay comparable
    and serializable.

Mathematical Correctness:
    - Period return: r(t) = E(t) / E(t-1) - 1 (0.0 when E(t-1) == 0)
    - Total return: (E_final - E_initial) / E_initial
    - CAGR: (E_final / E_initial) ^ (periods_per_year / n) - 1
    - Volatility: std(r) * sqrt(periods_per_year)
    - Sharpe Ratio: mean(r - r_f) / std(r - r_f) * sqrt(periods_per_year)
    - Sortino Ratio: mean(r - r_f) / sigma_downside * sqrt(periods_per_year)
    - Max Drawdown: min((E(t) - Peak(t)) / Peak(t)), a non-positive fraction
    - Calmar Ratio: CAGR / |max_drawdown|

Usage:
    from portfolio_backtester.analytics.metrics import PerformanceMetrics

    returns = PerformanceMetrics.calculate_period_returns(equity_curve)
    sharpe = PerformanceMetrics.calculate_sharpe_ratio(returns)
    summary = PerformanceMetrics.calculate_all_metrics(equity_curve)

References:
    - Sharpe, W.F. (1994). The Sharpe Ratio. Journal of Portfolio Management.
    - Sortino, F.A. (1994). Performance Measurement in a Downside Risk Framework.
    - Young, T.W. (1991). Calmar Ratio: A Smoother Tool.
"""

import logging
from typing import Any, Dict, Sequence, Union

import numpy as np
import pandas as pd
from scipy import stats

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Trading days per year (industry standard)
TRADING_DAYS_PER_YEAR = 252

# Numerical tolerance for calculations
EPSILON = 1e-10

# Minimum data points for reliable statistics
MIN_OBSERVATIONS_FOR_STATS = 2

# Default risk-free rate (annualized)
DEFAULT_RISK_FREE_RATE = 0.0

# Keys of the summary produced by calculate_all_metrics()
SUMMARY_METRICS = (
    'total_return',
    'annualized_return',
    'volatility',
    'sharpe_ratio',
    'sortino_ratio',
    'max_drawdown',
    'calmar_ratio',
)

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


# =============================================================================
# Exceptions
# =============================================================================

class MetricsError(Exception):
    """Base exception for metrics calculation errors."""
    pass


class InsufficientDataError(MetricsError):
    """Exception raised when there is insufficient data for calculation."""
    pass


class InvalidDataError(MetricsError):
    """Exception raised when data is invalid for calculation."""
    pass


# =============================================================================
# Helpers
# =============================================================================

def _to_array(values: ArrayLike, name: str) -> np.ndarray:
    """Convert input to a 1-D float array, rejecting non-finite values."""
    if values is None:
        raise InvalidDataError(f"{name} cannot be None")
    if isinstance(values, pd.DataFrame):
        if 'equity' not in values.columns:
            raise InvalidDataError("DataFrame must contain 'equity' column")
        values = values['equity']
    try:
        array = np.asarray(values, dtype=float).ravel()
    except (TypeError, ValueError) as e:
        raise InvalidDataError(f"{name} must be numeric") from e
    if not np.all(np.isfinite(array)):
        raise InvalidDataError(f"{name} contains NaN or infinite values")
    return array


# =============================================================================
# PerformanceMetrics Class
# =============================================================================

class PerformanceMetrics:
    """
    Calculate portfolio performance metrics.

    Metrics Categories:
        1. Returns-based: Total return, CAGR, Sharpe, Sortino, Calmar
        2. Risk: Volatility, max drawdown
        3. Distribution: Mean, std, skewness, kurtosis, percentiles

    Example:
        >>> equity = [10000.0, 10100.0, 9950.0, 10200.0]
        >>> returns = PerformanceMetrics.calculate_period_returns(equity)
        >>> PerformanceMetrics.calculate_total_return(equity)
        0.02
    """

    # =========================================================================
    # Returns-Based Metrics
    # =========================================================================

    @staticmethod
    def calculate_period_returns(equity_curve: ArrayLike) -> np.ndarray:
        """
        Calculate simple period-over-period returns.

        Formula:
            r(t) = E(t) / E(t-1) - 1

        A period whose previous value is zero has return 0.0.

        Args:
            equity_curve: Portfolio value per step

        Returns:
            Array of length len(equity_curve) - 1 (empty for 0 or 1 points)
        """
        equity = _to_array(equity_curve, "equity_curve")
        if len(equity) < 2:
            return np.zeros(0)

        previous = equity[:-1]
        current = equity[1:]
        returns = np.zeros(len(previous))
        nonzero = previous != 0
        returns[nonzero] = current[nonzero] / previous[nonzero] - 1.0
        return returns

    @staticmethod
    def calculate_total_return(equity_curve: ArrayLike) -> float:
        """
        Calculate total return as a fraction.

        Formula:
            Total Return = (Final - Initial) / Initial

        Raises:
            InvalidDataError: If the curve is empty or starts at zero
        """
        equity = _to_array(equity_curve, "equity_curve")
        if len(equity) == 0:
            raise InvalidDataError("Equity data is empty")

        initial = equity[0]
        if abs(initial) < EPSILON:
            raise InvalidDataError("Initial equity is zero")

        return float((equity[-1] - initial) / initial)

    @staticmethod
    def calculate_annualized_return(
        equity_curve: ArrayLike,
        periods_per_year: int = TRADING_DAYS_PER_YEAR
    ) -> float:
        """
        Calculate Compound Annual Growth Rate (CAGR).

        Formula:
            CAGR = (Final / Initial) ^ (periods_per_year / n) - 1

        where n is the number of equity observations.

        Returns:
            CAGR as a fraction. 0.0 for fewer than 2 observations, when
            either end of the curve is non-positive, or when the result
            overflows a float.
        """
        equity = _to_array(equity_curve, "equity_curve")
        if len(equity) < MIN_OBSERVATIONS_FOR_STATS:
            return 0.0

        initial, final = equity[0], equity[-1]
        if initial <= 0 or final <= 0:
            logger.warning(
                f"Cannot annualize with non-positive equity "
                f"(initial={initial}, final={final}); returning 0.0"
            )
            return 0.0

        exponent = periods_per_year / len(equity)
        with np.errstate(over='ignore'):
            cagr = float(np.power(final / initial, exponent) - 1.0)

        if not np.isfinite(cagr):
            logger.warning(
                f"CAGR overflows for growth {final / initial:g} over "
                f"{len(equity)} observations; returning 0.0"
            )
            return 0.0
        return cagr

    @staticmethod
    def calculate_volatility(
        returns: ArrayLike,
        periods_per_year: int = TRADING_DAYS_PER_YEAR
    ) -> float:
        """
        Annualized volatility: sample std of period returns x sqrt(periods).

        Returns 0.0 for fewer than 2 returns.
        """
        r = _to_array(returns, "returns")
        if len(r) < MIN_OBSERVATIONS_FOR_STATS:
            return 0.0
        return float(np.std(r, ddof=1) * np.sqrt(periods_per_year))

    @staticmethod
    def calculate_sharpe_ratio(
        returns: ArrayLike,
        risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
        periods_per_year: int = TRADING_DAYS_PER_YEAR
    ) -> float:
        """
        Calculate annualized Sharpe Ratio.

        Formula:
            Sharpe = mean(r - rf_per_period) / std(r - rf_per_period)
                     * sqrt(periods_per_year)

        Args:
            returns: Period returns
            risk_free_rate: Annual risk-free rate as decimal
            periods_per_year: Number of periods per year (252 for daily)

        Returns:
            Annualized Sharpe ratio; 0.0 with fewer than 2 returns or zero
            volatility.

        Note:
            Uses sample standard deviation (N-1 denominator).
        """
        r = _to_array(returns, "returns")
        if len(r) < MIN_OBSERVATIONS_FOR_STATS:
            return 0.0

        excess = r - risk_free_rate / periods_per_year
        std = np.std(excess, ddof=1)
        if std < EPSILON:
            logger.debug("Zero volatility in Sharpe ratio calculation, returning 0.0")
            return 0.0

        return float(np.mean(excess) / std * np.sqrt(periods_per_year))

    @staticmethod
    def calculate_sortino_ratio(
        returns: ArrayLike,
        risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
        periods_per_year: int = TRADING_DAYS_PER_YEAR
    ) -> float:
        """
        Calculate annualized Sortino Ratio.

        Formula:
            Sortino = mean(r - rf) / sqrt(mean(min(r - rf, 0)^2))
                      * sqrt(periods_per_year)

        Only returns below the risk-free rate contribute to the downside
        deviation. Returns 0.0 when there is no downside (or too little data).
        """
        r = _to_array(returns, "returns")
        if len(r) < MIN_OBSERVATIONS_FOR_STATS:
            return 0.0

        excess = r - risk_free_rate / periods_per_year
        downside = np.minimum(excess, 0.0)
        downside_dev = np.sqrt(np.mean(downside ** 2))
        if downside_dev < EPSILON:
            return 0.0

        return float(np.mean(excess) / downside_dev * np.sqrt(periods_per_year))

    @staticmethod
    def calculate_calmar_ratio(cagr: float, max_drawdown: float) -> float:
        """
        Calmar Ratio = CAGR / |max_drawdown|.

        Returns 0.0 when there was no drawdown.
        """
        if not np.isfinite(cagr) or not np.isfinite(max_drawdown):
            raise InvalidDataError(
                f"Calmar inputs must be finite, got cagr={cagr}, "
                f"max_drawdown={max_drawdown}"
            )
        if abs(max_drawdown) < EPSILON:
            return 0.0
        return float(cagr / abs(max_drawdown))

    # =========================================================================
    # Drawdown Metrics
    # =========================================================================

    @staticmethod
    def calculate_max_drawdown(equity_curve: ArrayLike) -> Dict[str, Any]:
        """
        Calculate maximum drawdown and where it happened.

        Formula:
            Drawdown(t) = (Equity(t) - Peak(t)) / Peak(t)
            Max Drawdown = min(Drawdown(t)) for all t

        Steps whose running peak is not positive have drawdown 0.0.

        Returns:
            Dictionary containing:
                - 'max_drawdown': Maximum drawdown as a non-positive fraction
                - 'max_drawdown_value': Maximum drawdown in dollars
                - 'peak_index': Step of the peak before the trough
                - 'trough_index': Step of the trough
                - 'recovery_index': First step back at the peak (None if never)
                - 'drawdown_series': Drawdown fraction per step

        Raises:
            InvalidDataError: If the curve is empty
        """
        equity = _to_array(equity_curve, "equity_curve")
        if len(equity) == 0:
            raise InvalidDataError("Equity data is empty")

        running_max = np.maximum.accumulate(equity)
        drawdown = np.zeros(len(equity))
        positive = running_max > 0
        drawdown[positive] = (
            (equity[positive] - running_max[positive]) / running_max[positive]
        )

        trough = int(np.argmin(drawdown))
        max_dd = float(drawdown[trough])
        peak = int(np.argmax(equity[:trough + 1]))
        peak_value = float(equity[peak])

        recovery = None
        if max_dd < 0:
            recovered = np.nonzero(equity[trough:] >= peak_value)[0]
            if len(recovered) > 0:
                recovery = trough + int(recovered[0])

        return {
            'max_drawdown': max_dd,
            'max_drawdown_value': float(equity[trough] - running_max[trough]),
            'peak_index': peak,
            'peak_value': peak_value,
            'trough_index': trough,
            'trough_value': float(equity[trough]),
            'recovery_index': recovery,
            'drawdown_series': drawdown,
        }

    # =========================================================================
    # Distribution Metrics
    # =========================================================================

    @staticmethod
    def calculate_returns_distribution(returns: ArrayLike) -> Dict[str, Any]:
        """
        Calculate return distribution statistics.

        Returns:
            Dictionary containing mean, median, std, skewness, excess kurtosis,
            min, max, count and a 'percentiles' dict.

        Raises:
            InsufficientDataError: If fewer than 2 returns

        Note:
            Negative skewness indicates a left tail (more extreme losses).
        """
        r = _to_array(returns, "returns")
        if len(r) < MIN_OBSERVATIONS_FOR_STATS:
            raise InsufficientDataError(
                f"Need at least {MIN_OBSERVATIONS_FOR_STATS} observations, "
                f"got {len(r)}"
            )

        std = float(np.std(r, ddof=1))
        # Higher moments are undefined for a constant series
        if len(r) >= 3 and std > EPSILON:
            skewness = float(stats.skew(r))
        else:
            skewness = 0.0
        if len(r) >= 4 and std > EPSILON:
            kurtosis = float(stats.kurtosis(r, fisher=True))
        else:
            kurtosis = 0.0

        percentiles = {
            p: float(np.percentile(r, p)) for p in (1, 5, 25, 50, 75, 95, 99)
        }

        return {
            'mean': float(np.mean(r)),
            'median': float(np.median(r)),
            'std': std,
            'skewness': skewness,
            'kurtosis': kurtosis,
            'min': float(np.min(r)),
            'max': float(np.max(r)),
            'count': int(len(r)),
            'percentiles': percentiles,
        }

    # =========================================================================
    # Summary
    # =========================================================================

    @staticmethod
    def calculate_all_metrics(
        equity_curve: ArrayLike,
        periods_per_year: int = TRADING_DAYS_PER_YEAR,
        risk_free_rate: float = DEFAULT_RISK_FREE_RATE
    ) -> Dict[str, float]:
        """
        Calculate the summary metrics of a backtest.

        Args:
            equity_curve: Portfolio value per step
            periods_per_year: Steps per year for annualization
            risk_free_rate: Annual risk-free rate

        Returns:
            Dictionary with keys total_return, annualized_return, volatility,
            sharpe_ratio, sortino_ratio, max_drawdown and calmar_ratio. All
            values are finite floats.

        Example:
            >>> metrics = PerformanceMetrics.calculate_all_metrics(result.equity_curve)
            >>> print(f"Sharpe Ratio: {metrics['sharpe_ratio']:.2f}")
        """
        equity = _to_array(equity_curve, "equity_curve")
        if len(equity) == 0:
            return {key: 0.0 for key in SUMMARY_METRICS}

        returns = PerformanceMetrics.calculate_period_returns(equity)

        try:
            total_return = PerformanceMetrics.calculate_total_return(equity)
        except InvalidDataError as e:
            logger.warning(f"Could not calculate total return: {e}")
            total_return = 0.0

        annualized_return = PerformanceMetrics.calculate_annualized_return(
            equity, periods_per_year
        )
        max_drawdown = PerformanceMetrics.calculate_max_drawdown(equity)['max_drawdown']

        metrics = {
            'total_return': total_return,
            'annualized_return': annualized_return,
            'volatility': PerformanceMetrics.calculate_volatility(
                returns, periods_per_year
            ),
            'sharpe_ratio': PerformanceMetrics.calculate_sharpe_ratio(
                returns, risk_free_rate, periods_per_year
            ),
            'sortino_ratio': PerformanceMetrics.calculate_sortino_ratio(
                returns, risk_free_rate, periods_per_year
            ),
            'max_drawdown': max_drawdown,
            'calmar_ratio': PerformanceMetrics.calculate_calmar_ratio(
                annualized_return, max_drawdown
            ),
        }

        for key, value in metrics.items():
            if not np.isfinite(value):
                logger.warning(f"Metric {key} is not finite ({value}); reporting 0.0")
                metrics[key] = 0.0

        return metrics


__all__ = [
    'PerformanceMetrics',
    'MetricsError',
    'InsufficientDataError',
    'InvalidDataError',
    'TRADING_DAYS_PER_YEAR',
    'DEFAULT_RISK_FREE_RATE',
    'SUMMARY_METRICS',
]
