"""
Core Portfolio Accounting Components

This module contains the fundamental building blocks:
- Transaction: Immutable transaction records and the transaction store
- Holding: Average-cost ledger entries and realized trades
- Ledger: Chronological replay of transactions into holdings
- Fees: Broker fee estimation and annual fees
- Portfolio: Main portfolio entity tying the above together
"""

from .transaction import Transaction, TransactionType, TransactionStore
from .holding import Holding, HoldingKey, RealizedTrade
from .ledger import LedgerResult, replay_ledger
from .fees import Broker, CommissionType, FeeSchedule
from .portfolio import Portfolio

__all__ = [
    'Transaction', 'TransactionType', 'TransactionStore',
    'Holding', 'HoldingKey', 'RealizedTrade',
    'LedgerResult', 'replay_ledger',
    'Broker', 'CommissionType', 'FeeSchedule',
    'Portfolio',
]
