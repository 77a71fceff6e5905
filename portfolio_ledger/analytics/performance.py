"""
Per-ticker performance.

Builds one row per traded instrument with its lifetime realized, unrealized
and dividend results, using the same average-cost ledger as the holdings
view with brokers combined.
"""

from decimal import Decimal
from typing import Dict, Iterable, Mapping, Optional, Union
import logging

import pandas as pd

from ..core.transaction import Transaction, TransactionType, ZERO

logger = logging.getLogger(__name__)

# Bookkeeping rows that carry a placeholder ticker rather than an instrument
SYSTEM_TYPES = frozenset({
    TransactionType.DEPOSIT, TransactionType.WITHDRAWAL, TransactionType.ANNUAL_FEE,
    TransactionType.TAX, TransactionType.HISTORY, TransactionType.OTHER,
})
SYSTEM_TICKERS = frozenset({'', 'CASH', 'ANNUAL FEE', 'CGT', 'PREV-PNL', 'ADJUSTMENT', 'OTHER FEE'})

ACTIVE_THRESHOLD = Decimal('0.01')

COLUMNS = [
    'ticker', 'status', 'owned_qty', 'sold_qty', 'avg_price', 'current_price',
    'current_value', 'realized_pl', 'unrealized_pl', 'gross_dividends',
    'dividend_tax', 'net_dividends', 'fees_paid', 'trade_count', 'total_net_return',
]


def ticker_performance(transactions: Iterable[Transaction],
                       prices: Optional[Mapping[str, Union[Decimal, float]]] = None) -> pd.DataFrame:
    """
    Summarise every instrument ever traded.

    Args:
        transactions: Portfolio transactions, any order
        prices: Ticker -> current price; open positions without a price are
            valued at cost

    Returns:
        DataFrame with one row per ticker sorted by ticker (see COLUMNS)
    """
    from ..core.ledger import replay_ledger

    rows = [t for t in transactions if t.type not in SYSTEM_TYPES and t.ticker not in SYSTEM_TICKERS]
    by_ticker: Dict[str, list] = {}
    for t in rows:
        by_ticker.setdefault(t.ticker, []).append(t)

    records = []
    for ticker in sorted(by_ticker):
        txs = by_ticker[ticker]
        result = replay_ledger(txs, combine_brokers=True, prices=prices)
        holding = result.get(ticker)

        owned = holding.quantity if holding else ZERO
        avg_price = holding.avg_price if holding else ZERO
        current_price = holding.current_price if holding else ZERO
        realized_pl = sum((r.profit for r in result.realized), ZERO)
        unrealized_pl = holding.unrealized_pnl if holding else ZERO
        trades = [t for t in txs if t.is_trade]

        records.append({
            'ticker': ticker,
            'status': 'Active' if owned > ACTIVE_THRESHOLD else 'Closed',
            'owned_qty': float(owned),
            'sold_qty': float(sum((r.quantity for r in result.realized), ZERO)),
            'avg_price': float(avg_price),
            'current_price': float(current_price),
            'current_value': float(owned * current_price),
            'realized_pl': float(realized_pl),
            'unrealized_pl': float(unrealized_pl),
            'gross_dividends': float(result.dividends.gross),
            'dividend_tax': float(result.dividends.tax),
            'net_dividends': float(result.net_dividends),
            'fees_paid': float(sum((t.total_fees for t in trades), ZERO)),
            'trade_count': len(trades),
            'total_net_return': float(realized_pl + unrealized_pl + result.net_dividends),
        })

    logger.debug(f"Built performance rows for {len(records)} tickers")
    return pd.DataFrame(records, columns=COLUMNS)
