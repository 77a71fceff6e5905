"""
Cost-Basis Ledger

Replays a transaction log into point-in-time holdings, realized trades and
dividend income using average-cost accounting. The replay is a pure
function of its input: every call rebuilds the ledger from scratch.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Union
from dataclasses import dataclass, field
import logging

from .holding import Holding, HoldingKey, RealizedTrade
from .transaction import Transaction, TransactionType
from ..analytics.dividends import DividendAggregator

logger = logging.getLogger(__name__)

CLOSED_EPSILON = Decimal('0.0001')
UNKNOWN_BROKER = "Unknown"
MULTIPLE_BROKERS = "Multiple Brokers"

# Same-day ordering: buys are in the cost basis before same-day sells realize
TYPE_ORDER = {
    TransactionType.BUY: 0,
    TransactionType.DIVIDEND: 1,
    TransactionType.SELL: 2,
}
_OTHER_ORDER = len(TYPE_ORDER)

Number = Union[Decimal, float, int, str]


@dataclass
class LedgerResult:
    """Output of a ledger replay."""
    holdings: Dict[HoldingKey, Holding] = field(default_factory=dict)
    realized: List[RealizedTrade] = field(default_factory=list)
    dividends: DividendAggregator = field(default_factory=DividendAggregator)

    @property
    def net_dividends(self) -> Decimal:
        return self.dividends.net

    @property
    def holding_list(self) -> List[Holding]:
        return list(self.holdings.values())

    def get(self, ticker: str, broker: Optional[str] = None) -> Optional[Holding]:
        return self.holdings.get(HoldingKey(ticker, broker))


def sort_transactions(transactions: Iterable[Transaction]) -> List[Transaction]:
    """
    Sort ascending by date, then BUY, DIVIDEND, SELL, then everything else.

    The sort is stable, so rows equal on both keys keep their input order.
    """
    return sorted(transactions, key=lambda t: (t.date, TYPE_ORDER.get(t.type, _OTHER_ORDER)))


def holding_key(transaction: Transaction, combine_brokers: bool,
                unknown_broker: str = UNKNOWN_BROKER) -> HoldingKey:
    if combine_brokers:
        return HoldingKey(transaction.ticker)
    return HoldingKey(transaction.ticker, transaction.broker or unknown_broker)


def replay_ledger(transactions: Iterable[Transaction],
                  combine_brokers: bool = False,
                  broker_filter: Optional[str] = None,
                  prices: Optional[Mapping[str, Number]] = None,
                  epsilon: Number = CLOSED_EPSILON,
                  unknown_broker: str = UNKNOWN_BROKER) -> LedgerResult:
    """
    Replay transactions into holdings, realized trades and dividend income.

    Args:
        transactions: Rows of a single portfolio (or a combined view), any order
        combine_brokers: Key holdings by ticker alone instead of ticker and broker
        broker_filter: Only replay rows booked with this broker
        prices: Ticker -> current price overrides; missing tickers price at cost
        epsilon: Holdings at or below this quantity are treated as closed
        unknown_broker: Broker label for rows without one

    Returns:
        LedgerResult with open holdings (first-seen order), one realized trade
        per SELL that found shares to sell, and the dividend aggregate
    """
    epsilon = Decimal(str(epsilon))
    price_map = {str(ticker).strip().upper(): Decimal(str(price))
                 for ticker, price in (prices or {}).items() if price is not None}

    rows = list(transactions)
    if broker_filter is not None:
        rows = [t for t in rows if t.broker == broker_filter]

    holdings: Dict[HoldingKey, Holding] = {}
    realized: List[RealizedTrade] = []
    dividends = DividendAggregator()

    if combine_brokers:
        combined_label = broker_filter if broker_filter is not None else MULTIPLE_BROKERS
    else:
        combined_label = None

    for tx in sort_transactions(rows):
        if tx.type == TransactionType.DIVIDEND:
            dividends.add(tx)
            continue
        if not tx.is_trade:
            continue

        key = holding_key(tx, combine_brokers, unknown_broker)
        holding = holdings.get(key)
        if holding is None:
            holding = Holding(key.ticker, combined_label if combine_brokers else key.broker)
            holdings[key] = holding

        if tx.type == TransactionType.BUY:
            holding.apply_buy(tx)
        else:
            if tx.quantity > holding.quantity:
                logger.debug(
                    f"Sell {tx.id} of {tx.quantity} {tx.ticker} capped at held {holding.quantity}"
                )
            trade = holding.apply_sell(tx, broker=tx.broker or unknown_broker)
            if trade is None:
                logger.debug(f"Sell {tx.id} of {tx.ticker} on {tx.date} found no shares held")
            else:
                realized.append(trade)

    open_holdings: Dict[HoldingKey, Holding] = {}
    for key, holding in holdings.items():
        if holding.quantity > epsilon:
            holding.resolve_price(price_map)
            open_holdings[key] = holding

    logger.info(
        f"Replayed {len(rows)} transactions: {len(open_holdings)} open holdings, "
        f"{len(realized)} realized trades, {dividends.count} dividends"
    )
    return LedgerResult(holdings=open_holdings, realized=realized, dividends=dividends)
