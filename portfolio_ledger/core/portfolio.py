"""
Portfolio Module

This module provides the Portfolio class that serves as the main container
for a transaction log, its price overrides and settings, and recomputes
holdings and statistics from scratch on request.
"""

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Any, Union
from dataclasses import replace as dataclass_replace
import logging

import pandas as pd

from .fees import Broker, generate_annual_fees
from .ledger import LedgerResult, replay_ledger
from .transaction import Transaction, TransactionFees, TransactionStore, TransactionType, DEFAULT_PORTFOLIO_ID
from ..analytics.performance import ticker_performance
from ..analytics.statistics import PortfolioStats, PortfolioSummary, compute_stats, summarize_portfolio
from ..analytics.xirr import build_cash_flows

logger = logging.getLogger(__name__)

Number = Union[Decimal, float, int, str]


class Portfolio:
    """
    Portfolio view over a transaction store.

    This class provides:
    - Transaction entry, full-replacement edits and deletion
    - Current and previous-close price overrides
    - Holdings, realized trades and dividends by replaying the log
    - Headline statistics, the full summary and the money-weighted return
    - Broker fee estimation and annual broker fee generation

    Nothing is cached: every query replays the current transaction slice.
    """

    def __init__(self,
                 portfolio_id: str = DEFAULT_PORTFOLIO_ID,
                 store: Optional[TransactionStore] = None,
                 config=None,
                 combined_ids: Optional[Iterable[str]] = None):
        """
        Initialize a portfolio.

        Args:
            portfolio_id: Portfolio whose rows are replayed and which owns new rows
            store: Shared transaction store (a new one is created if omitted)
            config: LedgerConfig with replay, XIRR and fee settings
            combined_ids: Replay the union of these portfolios instead of one
        """
        if config is None:
            from ..config import LedgerConfig
            config = LedgerConfig()

        self.portfolio_id = portfolio_id
        self.store = store if store is not None else TransactionStore()
        self.config = config
        self.combined_ids = set(combined_ids) if combined_ids else None

        self.prices: Dict[str, Decimal] = {}
        self.previous_close: Dict[str, Decimal] = {}
        self.brokers: Dict[str, Broker] = {}

    # Transactions

    def add_transaction(self, transaction: Transaction) -> str:
        """
        Add a transaction to this portfolio.

        Rows created with the default portfolio id are re-homed to this one.

        Returns:
            Transaction ID
        """
        if transaction.portfolio_id != self.portfolio_id and transaction.portfolio_id == DEFAULT_PORTFOLIO_ID:
            transaction = dataclass_replace(transaction, portfolio_id=self.portfolio_id)
        return self.store.add(transaction)

    def update_transaction(self, transaction: Transaction) -> Transaction:
        return self.store.replace(transaction)

    def delete_transaction(self, transaction_id: str) -> Transaction:
        return self.store.delete(transaction_id)

    def transactions(self) -> List[Transaction]:
        """Rows of this portfolio, or of the combined view."""
        if self.combined_ids:
            return self.store.for_portfolios(self.combined_ids)
        return self.store.for_portfolio(self.portfolio_id)

    def replay_slice(self) -> List[Transaction]:
        """Rows that the ledger replays, after the configured broker filter."""
        rows = self.transactions()
        if self.config.broker_filter is not None:
            rows = [t for t in rows if t.broker == self.config.broker_filter]
        return rows

    def brokers_in_use(self) -> List[str]:
        return sorted({t.broker for t in self.transactions() if t.broker})

    # Prices

    def update_prices(self, prices: Dict[str, Number]):
        """
        Merge current price overrides.

        Args:
            prices: Dictionary of ticker -> price
        """
        for ticker, price in prices.items():
            if price is None:
                continue
            self.prices[ticker.strip().upper()] = Decimal(str(price))

    def update_previous_close(self, prices: Dict[str, Number]):
        for ticker, price in prices.items():
            if price is None:
                continue
            self.previous_close[ticker.strip().upper()] = Decimal(str(price))

    # Replay and statistics

    def replay(self) -> LedgerResult:
        return replay_ledger(
            self.transactions(),
            combine_brokers=self.config.combine_brokers,
            broker_filter=self.config.broker_filter,
            prices=self.prices,
            epsilon=self.config.epsilon,
            unknown_broker=self.config.unknown_broker,
        )

    def get_stats(self, result: Optional[LedgerResult] = None) -> PortfolioStats:
        result = result or self.replay()
        return compute_stats(result.holding_list, result.realized, result.net_dividends)

    def get_summary(self, as_of: Optional[date] = None, result: Optional[LedgerResult] = None) -> PortfolioSummary:
        result = result or self.replay()
        return summarize_portfolio(
            self.replay_slice(),
            result,
            previous_close=self.previous_close,
            as_of=as_of,
            xirr_guess=self.config.xirr_guess,
            xirr_max_iterations=self.config.xirr_max_iterations,
            xirr_tolerance=self.config.xirr_tolerance,
        )

    def money_weighted_return(self, as_of: Optional[date] = None) -> float:
        """
        Annualized money-weighted return in percent.

        The terminal flow is market value plus free cash on ``as_of``. A
        result of 0 means the return could not be determined.
        """
        summary = self.get_summary(as_of=as_of)
        return summary.mwrr

    def cash_flows(self, as_of: Optional[date] = None):
        summary = self.get_summary(as_of=as_of)
        return build_cash_flows(self.replay_slice(), summary.stats.total_value + summary.free_cash, as_of)

    def get_performance(self) -> pd.DataFrame:
        return ticker_performance(self.replay_slice(), self.prices)

    # Fees

    def add_broker(self, broker: Broker):
        self.brokers[broker.name] = broker

    def estimate_fees(self, quantity: Number, price: Number, broker: Optional[str] = None,
                      transaction_type=TransactionType.BUY) -> TransactionFees:
        """
        Estimate the fees of a new row.

        Trades use the registered broker's commission settings when there
        are any. DIVIDEND rows get withholding tax only.
        """
        schedule = self.config.fee_schedule
        if broker in self.brokers:
            schedule = self.brokers[broker].fee_schedule(schedule)
        if TransactionType.parse(transaction_type) == TransactionType.DIVIDEND:
            return schedule.estimate_dividend(quantity, price)
        return schedule.estimate(quantity, price)

    def apply_annual_fees(self, today: Optional[date] = None) -> List[str]:
        """Add any annual broker fees that have fallen due; returns new ids."""
        fees = generate_annual_fees(self.brokers.values(), self.store, self.portfolio_id, today)
        return self.store.add_many(fees)

    def get_portfolio_summary(self, as_of: Optional[date] = None) -> Dict[str, Any]:
        """
        Get portfolio summary.

        Returns:
            Dictionary with holdings, realized trades and summary figures as floats
        """
        result = self.replay()
        summary = self.get_summary(as_of=as_of, result=result)
        return {
            'portfolio_id': self.portfolio_id,
            'combined_ids': sorted(self.combined_ids) if self.combined_ids else None,
            'holdings': [h.get_holding_summary() for h in result.holding_list],
            'realized': [r.to_dict() for r in result.realized],
            'summary': summary.to_dict(),
        }

    def __str__(self) -> str:
        return f"Portfolio({self.portfolio_id}, {len(self.transactions())} transactions)"
