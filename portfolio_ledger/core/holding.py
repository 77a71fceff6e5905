"""
Holding Module

This module provides the Holding class for tracking a single cost-basis
ledger entry with average-cost accounting, and the RealizedTrade record
emitted when shares are sold.
"""

from datetime import date
from decimal import Decimal, localcontext
from typing import Dict, Optional, NamedTuple
from dataclasses import dataclass

from .transaction import Transaction, ZERO

# Average cost is held to a fixed number of places, so price - avg_price and
# quantity * avg_price stay exact in the default context
AVG_PRICE_QUANTUM = Decimal('1E-10')
# Working precision for buy/sell arithmetic
LEDGER_PRECISION = 80


class HoldingKey(NamedTuple):
    """Grouping key of a ledger entry. ``broker`` is None when brokers are combined."""
    ticker: str
    broker: Optional[str] = None

    def __str__(self) -> str:
        return self.ticker if self.broker is None else f"{self.ticker}|{self.broker}"


@dataclass(frozen=True)
class RealizedTrade:
    """
    Economic outcome of one SELL transaction.

    ``buy_avg`` is the ledger's average price at the moment of sale; the
    record describes the sale event, not an individually matched lot.
    Identity: ``profit + fees == quantity * (sell_price - buy_avg)``.
    """
    id: str
    ticker: str
    broker: Optional[str]
    date: date
    quantity: Decimal
    buy_avg: Decimal
    sell_price: Decimal
    fees: Decimal
    profit: Decimal
    commission: Decimal = ZERO
    tax: Decimal = ZERO
    cdc_charges: Decimal = ZERO

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.buy_avg

    @property
    def proceeds(self) -> Decimal:
        return self.quantity * self.sell_price - self.fees

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'ticker': self.ticker,
            'broker': self.broker,
            'date': self.date.isoformat(),
            'quantity': float(self.quantity),
            'buy_avg': float(self.buy_avg),
            'sell_price': float(self.sell_price),
            'fees': float(self.fees),
            'profit': float(self.profit),
        }


class Holding:
    """
    A position in one instrument under one grouping key.

    This class manages:
    - Running quantity and weighted-average cost (fees included)
    - Accumulated commission, tax and CDC charges, written down pro rata on sale
    - Current price resolution for valuation

    ``avg_price`` only changes on buys. Sells reduce quantity and the fee
    accumulators but leave the average untouched.
    """

    def __init__(self, ticker: str, broker: Optional[str] = None):
        """
        Initialize an empty holding.

        Args:
            ticker: Instrument symbol
            broker: Broker label shown for this holding
        """
        self.ticker = ticker
        self.broker = broker

        self.quantity = ZERO
        self.avg_price = ZERO
        self.current_price = ZERO

        self.total_commission = ZERO
        self.total_tax = ZERO
        self.total_cdc = ZERO

    def apply_buy(self, transaction: Transaction) -> None:
        """
        Add shares at the transaction price plus its commission, tax and CDC.

        new_avg = (old_qty * old_avg + qty * price + fees) / (old_qty + qty)

        The new average is rounded half-even to 10 decimal places.
        """
        with localcontext() as ctx:
            ctx.prec = LEDGER_PRECISION
            total_cost = self.quantity * self.avg_price + transaction.gross_amount + transaction.ledger_fees
            new_quantity = self.quantity + transaction.quantity
            if new_quantity > 0:
                self.avg_price = (total_cost / new_quantity).quantize(AVG_PRICE_QUANTUM)
            else:
                self.avg_price = ZERO
        self.quantity = new_quantity

        self.total_commission += transaction.commission
        self.total_tax += transaction.tax
        self.total_cdc += transaction.cdc_charges

    def apply_sell(self, transaction: Transaction, broker: Optional[str] = None) -> Optional[RealizedTrade]:
        """
        Remove shares at the current average cost.

        Requests above the held quantity are capped. Nothing is realized when
        the holding is empty.

        Args:
            transaction: SELL transaction
            broker: Broker recorded on the realized trade (defaults to the row's)

        Returns:
            RealizedTrade for the sale, or None if nothing was held
        """
        if self.quantity <= 0:
            return None

        held = self.quantity
        qty_to_sell = min(held, transaction.quantity)
        fees = transaction.ledger_fees
        with localcontext() as ctx:
            ctx.prec = LEDGER_PRECISION
            cost_basis = qty_to_sell * self.avg_price
            proceeds = qty_to_sell * transaction.price - fees
            profit = proceeds - cost_basis

        trade = RealizedTrade(
            id=transaction.id,
            ticker=transaction.ticker,
            broker=broker if broker is not None else transaction.broker,
            date=transaction.date,
            quantity=qty_to_sell,
            buy_avg=self.avg_price,
            sell_price=transaction.price,
            fees=fees,
            profit=profit,
            commission=transaction.commission,
            tax=transaction.tax,
            cdc_charges=transaction.cdc_charges,
        )

        # The sold fraction carries its share of every fee accumulated so far
        remaining = 1 - qty_to_sell / held
        self.total_commission *= remaining
        self.total_tax *= remaining
        self.total_cdc *= remaining
        self.quantity = held - qty_to_sell

        return trade

    def resolve_price(self, prices: Optional[Dict[str, Decimal]] = None) -> Decimal:
        """Set current_price from the price map, falling back to avg_price."""
        price = (prices or {}).get(self.ticker)
        self.current_price = Decimal(str(price)) if price else self.avg_price
        return self.current_price

    @property
    def total_fees(self) -> Decimal:
        return self.total_commission + self.total_tax + self.total_cdc

    @property
    def cost_value(self) -> Decimal:
        return self.quantity * self.avg_price

    @property
    def market_value(self) -> Decimal:
        return self.quantity * self.current_price

    @property
    def unrealized_pnl(self) -> Decimal:
        return self.market_value - self.cost_value

    def copy(self) -> 'Holding':
        clone = Holding(self.ticker, self.broker)
        clone.__dict__.update(self.__dict__)
        return clone

    def get_holding_summary(self) -> Dict:
        """
        Get holding summary.

        Returns:
            Dictionary with holding information as floats
        """
        return {
            'ticker': self.ticker,
            'broker': self.broker,
            'quantity': float(self.quantity),
            'avg_price': float(self.avg_price),
            'current_price': float(self.current_price),
            'market_value': float(self.market_value),
            'cost_value': float(self.cost_value),
            'unrealized_pnl': float(self.unrealized_pnl),
            'total_commission': float(self.total_commission),
            'total_tax': float(self.total_tax),
            'total_cdc': float(self.total_cdc),
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Holding):
            return NotImplemented
        return self.__dict__ == other.__dict__

    def __repr__(self) -> str:
        return (f"Holding(ticker={self.ticker}, broker={self.broker}, "
                f"quantity={self.quantity}, avg_price={self.avg_price})")
