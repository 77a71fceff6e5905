"""
Portfolio Analytics Components

- Dividend income aggregation
- Portfolio statistics and dashboard summary
- Money-weighted return (XIRR)
- Per-ticker performance
"""

from .dividends import DividendAggregator
from .xirr import CashFlow, xirr, build_cash_flows
from .statistics import PortfolioStats, PortfolioSummary, compute_stats, summarize_portfolio
from .performance import ticker_performance

__all__ = [
    'DividendAggregator',
    'CashFlow', 'xirr', 'build_cash_flows',
    'PortfolioStats', 'PortfolioSummary', 'compute_stats', 'summarize_portfolio',
    'ticker_performance',
]
