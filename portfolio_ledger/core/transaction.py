"""
Transaction Store Module

This module defines the immutable transaction record consumed by the ledger
replay, and the in-memory store that owns an ordered, id-keyed collection
of transactions for one or more portfolios.
"""

from datetime import datetime, date
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Any, Iterable, Iterator
from dataclasses import dataclass, field, replace as dataclass_replace
from enum import Enum
import logging
import math
import uuid
import json

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
DEFAULT_PORTFOLIO_ID = "default"


class TransactionType(Enum):
    """Transaction type enumeration."""
    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"
    TAX = "TAX"
    HISTORY = "HISTORY"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    ANNUAL_FEE = "ANNUAL_FEE"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: Any) -> 'TransactionType':
        """Parse a type name case-insensitively ('buy', 'Annual_Fee', ...)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown transaction type: {value!r}") from None


# Rows that move shares and therefore pass through the cost-basis ledger
TRADE_TYPES = frozenset({TransactionType.BUY, TransactionType.SELL})


def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """
    Coerce a numeric input to Decimal.

    None and empty strings become 0. Floats go through str() so that 10.1
    stays 10.1 rather than its binary expansion.

    Raises:
        ValueError: if the value is not a finite number
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"{field_name} must be numeric, got bool")
    elif isinstance(value, float):
        if math.isnan(value):
            return ZERO
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"{field_name} is not a number: {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"{field_name} must be finite, got {value!r}")
    return result


def to_date(value: Any) -> date:
    """Coerce an ISO date string, datetime or date to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            raise ValueError(f"Invalid transaction date: {value!r}") from None
    raise ValueError(f"Transaction date is required, got {value!r}")


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class TransactionFees:
    """Fees charged on a single transaction."""
    commission: Decimal = ZERO
    tax: Decimal = ZERO
    cdc_charges: Decimal = ZERO
    other_fees: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.commission + self.tax + self.cdc_charges + self.other_fees


@dataclass(frozen=True)
class Transaction:
    """
    Immutable transaction record.

    All numeric fields are coerced to Decimal and all fee fields default to
    zero at construction, so readers never need to guard against missing
    values. Edits are full replacements (see ``TransactionStore.replace``).

    For DIVIDEND rows ``price`` is the gross dividend per share and ``tax``
    the withholding tax. For cash rows (DEPOSIT, WITHDRAWAL, ANNUAL_FEE,
    TAX, HISTORY, OTHER) ``price`` carries the amount.
    """
    ticker: str
    type: TransactionType
    date: date
    quantity: Decimal = ZERO
    price: Decimal = ZERO
    commission: Decimal = ZERO
    tax: Decimal = ZERO
    cdc_charges: Decimal = ZERO
    other_fees: Decimal = ZERO
    broker: Optional[str] = None
    portfolio_id: str = DEFAULT_PORTFOLIO_ID
    notes: Optional[str] = None
    category: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        set_ = object.__setattr__
        set_(self, 'ticker', (_optional_text(self.ticker) or "").upper())
        set_(self, 'type', TransactionType.parse(self.type))
        set_(self, 'date', to_date(self.date))
        for name in ('quantity', 'price', 'commission', 'tax', 'cdc_charges', 'other_fees'):
            set_(self, name, to_decimal(getattr(self, name), name))
        set_(self, 'broker', _optional_text(self.broker))
        set_(self, 'notes', _optional_text(self.notes))
        set_(self, 'category', _optional_text(self.category))
        set_(self, 'portfolio_id', _optional_text(self.portfolio_id) or DEFAULT_PORTFOLIO_ID)
        set_(self, 'id', str(self.id))

    @property
    def fees(self) -> TransactionFees:
        return TransactionFees(self.commission, self.tax, self.cdc_charges, self.other_fees)

    @property
    def total_fees(self) -> Decimal:
        """All fees including other_fees."""
        return self.fees.total

    @property
    def ledger_fees(self) -> Decimal:
        """Fees that enter cost basis on BUY and reduce proceeds on SELL."""
        return self.commission + self.tax + self.cdc_charges

    @property
    def gross_amount(self) -> Decimal:
        return self.quantity * self.price

    @property
    def is_trade(self) -> bool:
        return self.type in TRADE_TYPES

    def with_fees(self, fees: TransactionFees) -> 'Transaction':
        """Return a copy carrying the given fees."""
        return dataclass_replace(
            self,
            commission=fees.commission,
            tax=fees.tax,
            cdc_charges=fees.cdc_charges,
            other_fees=fees.other_fees,
        )

    # Keys accepted by from_dict, camelCase first as stored by the web client
    _ALIASES = {
        'portfolioId': 'portfolio_id',
        'cdcCharges': 'cdc_charges',
        'otherFees': 'other_fees',
        'transaction_type': 'type',
        'symbol': 'ticker',
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        """
        Create a transaction from a mapping.

        Both camelCase (``portfolioId``, ``cdcCharges``, ``otherFees``) and
        snake_case keys are accepted; unknown keys are ignored.
        """
        known = {f for f in cls.__dataclass_fields__}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            name = cls._ALIASES.get(key, key)
            if name in known:
                kwargs[name] = value
        kwargs.setdefault('ticker', '')
        missing = [name for name in ('type', 'date') if name not in kwargs]
        if missing:
            raise ValueError(f"Transaction record missing fields: {', '.join(missing)}")
        if not _optional_text(kwargs.get('id')):
            kwargs.pop('id', None)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise using the camelCase keys of the stored schema."""
        return {
            'id': self.id,
            'portfolioId': self.portfolio_id,
            'ticker': self.ticker,
            'type': self.type.value,
            'date': self.date.isoformat(),
            'quantity': float(self.quantity),
            'price': float(self.price),
            'commission': float(self.commission),
            'tax': float(self.tax),
            'cdcCharges': float(self.cdc_charges),
            'otherFees': float(self.other_fees),
            'broker': self.broker,
            'notes': self.notes,
            'category': self.category,
        }

    def export_to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> 'Transaction':
        return cls.from_dict(json.loads(json_str))

    def __str__(self) -> str:
        return (f"Transaction({self.type.value} {self.quantity} "
                f"{self.ticker} @ {self.price} on {self.date})")


class TransactionStore:
    """
    Ordered collection of transactions keyed by id.

    Insertion order is preserved; it breaks ties between rows that share a
    date and type when the ledger replays them.
    """

    def __init__(self, transactions: Iterable[Transaction] = ()):
        self._transactions: Dict[str, Transaction] = {}
        self.add_many(transactions)

    def add(self, transaction: Transaction) -> str:
        """
        Add a transaction.

        Returns:
            Transaction ID

        Raises:
            ValueError: if a transaction with the same id already exists
        """
        if transaction.id in self._transactions:
            raise ValueError(f"Duplicate transaction id: {transaction.id}")
        self._transactions[transaction.id] = transaction
        return transaction.id

    def add_many(self, transactions: Iterable[Transaction]) -> List[str]:
        return [self.add(t) for t in transactions]

    def replace(self, transaction: Transaction) -> Transaction:
        """Replace the stored transaction with the same id, returning the old one."""
        if transaction.id not in self._transactions:
            raise KeyError(transaction.id)
        previous = self._transactions[transaction.id]
        self._transactions[transaction.id] = transaction
        logger.debug(f"Replaced transaction {transaction.id}")
        return previous

    def delete(self, transaction_id: str) -> Transaction:
        """Delete a transaction by id, returning it."""
        if transaction_id not in self._transactions:
            raise KeyError(transaction_id)
        return self._transactions.pop(transaction_id)

    def get(self, transaction_id: str) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    def all(self) -> List[Transaction]:
        return list(self._transactions.values())

    def for_portfolio(self, portfolio_id: str) -> List[Transaction]:
        return [t for t in self._transactions.values() if t.portfolio_id == portfolio_id]

    def for_portfolios(self, portfolio_ids: Iterable[str]) -> List[Transaction]:
        """Combined view over several portfolios."""
        wanted = set(portfolio_ids)
        return [t for t in self._transactions.values() if t.portfolio_id in wanted]

    def for_broker(self, broker: str) -> List[Transaction]:
        return [t for t in self._transactions.values() if t.broker == broker]

    def by_ticker(self, ticker: str) -> List[Transaction]:
        ticker = ticker.strip().upper()
        return [t for t in self._transactions.values() if t.ticker == ticker]

    def by_type(self, transaction_type: TransactionType) -> List[Transaction]:
        return [t for t in self._transactions.values() if t.type == transaction_type]

    def by_date_range(self, start_date: date, end_date: date) -> List[Transaction]:
        return [t for t in self._transactions.values() if start_date <= t.date <= end_date]

    def brokers(self, portfolio_id: Optional[str] = None) -> List[str]:
        """Sorted unique broker names, optionally within one portfolio."""
        rows = self.for_portfolio(portfolio_id) if portfolio_id else self._transactions.values()
        return sorted({t.broker for t in rows if t.broker})

    def portfolio_ids(self) -> List[str]:
        return sorted({t.portfolio_id for t in self._transactions.values()})

    def __len__(self) -> int:
        return len(self._transactions)

    def __iter__(self) -> Iterator[Transaction]:
        return iter(list(self._transactions.values()))

    def __contains__(self, transaction_id: object) -> bool:
        return transaction_id in self._transactions
