"""
Dividend income aggregation.

Dividends are accumulated apart from the cost-basis ledger: they never change
a holding's quantity or average price.
"""

from decimal import Decimal
from typing import Dict, Iterable
import logging

from ..core.transaction import Transaction, TransactionType, ZERO

logger = logging.getLogger(__name__)


class DividendAggregator:
    """Running gross / withholding tax / net dividend totals, overall and per ticker."""

    def __init__(self):
        self.gross = ZERO
        self.tax = ZERO
        self.count = 0
        self._by_ticker: Dict[str, Dict[str, Decimal]] = {}

    def add(self, transaction: Transaction) -> Decimal:
        """
        Accumulate a DIVIDEND row and return its net contribution.

        net = quantity * price - tax. A negative net (tax above gross) is kept
        and reduces the total. Other transaction types contribute 0.
        """
        if transaction.type != TransactionType.DIVIDEND:
            return ZERO

        gross = transaction.gross_amount
        net = gross - transaction.tax
        if net < 0:
            logger.debug(f"Dividend {transaction.id} on {transaction.ticker} has negative net {net}")

        self.gross += gross
        self.tax += transaction.tax
        self.count += 1

        entry = self._by_ticker.setdefault(transaction.ticker, {'gross': ZERO, 'tax': ZERO, 'net': ZERO})
        entry['gross'] += gross
        entry['tax'] += transaction.tax
        entry['net'] += net
        return net

    def add_many(self, transactions: Iterable[Transaction]) -> 'DividendAggregator':
        for transaction in transactions:
            self.add(transaction)
        return self

    @property
    def net(self) -> Decimal:
        return self.gross - self.tax

    def by_ticker(self) -> Dict[str, Dict[str, Decimal]]:
        return {ticker: dict(values) for ticker, values in self._by_ticker.items()}

    def to_dict(self) -> Dict:
        return {
            'gross': float(self.gross),
            'tax': float(self.tax),
            'net': float(self.net),
            'count': self.count,
        }
