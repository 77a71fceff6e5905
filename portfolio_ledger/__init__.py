"""
Portfolio Ledger Package

Portfolio accounting for an equity investor: replays a buy/sell/dividend/cash
transaction log into holdings, realized trades and P&L statistics.

Key Components:
- Core: Transactions, average-cost ledger, holdings, broker fees, Portfolio
- Analytics: Dividend income, portfolio statistics, XIRR, per-ticker performance
- Data: CSV / JSON ingestion and DataFrame export

License: MIT
"""

__version__ = "1.0.0"

# Core imports
from .core.transaction import Transaction, TransactionType, TransactionStore
from .core.holding import Holding, HoldingKey, RealizedTrade
from .core.ledger import LedgerResult, replay_ledger
from .core.fees import Broker, CommissionType, FeeSchedule
from .core.portfolio import Portfolio

# Analytics imports
from .analytics.dividends import DividendAggregator
from .analytics.statistics import PortfolioStats, PortfolioSummary, compute_stats, summarize_portfolio
from .analytics.xirr import CashFlow, xirr, build_cash_flows
from .analytics.performance import ticker_performance

# Configuration and data imports
from .config import LedgerConfig, load_config
from .data.ingestion import DataIngestion

__all__ = [
    # Core
    'Transaction',
    'TransactionType',
    'TransactionStore',
    'Holding',
    'HoldingKey',
    'RealizedTrade',
    'LedgerResult',
    'replay_ledger',
    'Broker',
    'CommissionType',
    'FeeSchedule',
    'Portfolio',
    # Analytics
    'DividendAggregator',
    'PortfolioStats',
    'PortfolioSummary',
    'compute_stats',
    'summarize_portfolio',
    'CashFlow',
    'xirr',
    'build_cash_flows',
    'ticker_performance',
    # Config / data
    'LedgerConfig',
    'load_config',
    'DataIngestion',
]
