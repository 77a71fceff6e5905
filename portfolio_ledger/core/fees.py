"""
Broker Fee Module

Estimates brokerage commission, sales tax on commission and CDC charges for
a trade, withholding tax on a dividend, and generates the recurring annual
broker fee transactions.
"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional
from dataclasses import dataclass, asdict, replace as dataclass_replace
from enum import Enum
import logging

from .transaction import (
    Transaction, TransactionFees, TransactionType, DEFAULT_PORTFOLIO_ID, ZERO, to_decimal, to_date,
)

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ANNUAL_FEE_TICKER = "ANNUAL FEE"


class CommissionType(Enum):
    """How a broker charges commission on a trade."""
    PERCENTAGE = "PERCENTAGE"   # commission_rate % of trade value
    PER_SHARE = "PER_SHARE"     # per_share_rate per share
    HIGHER_OF = "HIGHER_OF"     # the larger of the two above
    FIXED = "FIXED"             # fixed_commission per trade

    @classmethod
    def parse(cls, value: Any) -> 'CommissionType':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown commission type: {value!r}") from None


def _round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


_RATE_FIELDS = ('commission_rate', 'per_share_rate', 'fixed_commission', 'sales_tax_rate',
                'cdc_rate_per_share', 'withholding_tax_rate')


@dataclass(frozen=True)
class FeeSchedule:
    """
    Brokerage fee schedule.

    commission = by commission_type (see CommissionType)
    tax        = commission * sales_tax_rate
    cdc        = quantity * cdc_rate_per_share

    Dividends carry only withholding tax: gross * withholding_tax_rate.
    """
    commission_type: CommissionType = CommissionType.HIGHER_OF
    commission_rate: Decimal = Decimal('0.15')
    per_share_rate: Decimal = Decimal('0.05')
    fixed_commission: Decimal = ZERO
    sales_tax_rate: Decimal = Decimal('0.15')
    cdc_rate_per_share: Decimal = Decimal('0.005')
    withholding_tax_rate: Decimal = Decimal('0.15')

    def __post_init__(self):
        object.__setattr__(self, 'commission_type', CommissionType.parse(self.commission_type))
        for name in _RATE_FIELDS:
            object.__setattr__(self, name, to_decimal(getattr(self, name), name))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FeeSchedule':
        known = set(cls.__dataclass_fields__)
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        data = {name: float(value) for name, value in asdict(self).items() if name in _RATE_FIELDS}
        data['commission_type'] = self.commission_type.value
        return data

    def with_overrides(self, **overrides: Any) -> 'FeeSchedule':
        """Same schedule with the given non-None fields replaced."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclass_replace(self, **changes) if changes else self

    def commission(self, quantity: Decimal, price: Decimal) -> Decimal:
        """Unrounded commission for a trade."""
        by_value = quantity * price * self.commission_rate / 100
        by_quantity = quantity * self.per_share_rate
        if self.commission_type == CommissionType.PERCENTAGE:
            return by_value
        if self.commission_type == CommissionType.PER_SHARE:
            return by_quantity
        if self.commission_type == CommissionType.FIXED:
            return self.fixed_commission
        return max(by_value, by_quantity)

    def estimate(self, quantity: Any, price: Any) -> TransactionFees:
        """
        Estimate the fees of a BUY or SELL, each rounded to cents.

        Args:
            quantity: Shares traded
            price: Price per share

        Returns:
            TransactionFees with commission, tax and cdc_charges populated
        """
        quantity = to_decimal(quantity, 'quantity')
        price = to_decimal(price, 'price')
        if quantity <= 0 or price <= 0:
            return TransactionFees()

        commission = self.commission(quantity, price)
        # Sales tax applies to the unrounded commission
        tax = _round_money(commission * self.sales_tax_rate)
        cdc = _round_money(quantity * self.cdc_rate_per_share)

        return TransactionFees(commission=_round_money(commission), tax=tax, cdc_charges=cdc)

    def estimate_dividend(self, quantity: Any, price: Any) -> TransactionFees:
        """Withholding tax on a dividend of ``price`` per share; no commission or CDC."""
        quantity = to_decimal(quantity, 'quantity')
        price = to_decimal(price, 'price')
        if quantity <= 0 or price <= 0:
            return TransactionFees()
        return TransactionFees(tax=_round_money(quantity * price * self.withholding_tax_rate))


@dataclass(frozen=True)
class Broker:
    """
    Broker account settings.

    Commission fields left as None fall back to the base FeeSchedule.
    ``sales_tax_rate`` is a fraction (0.15 for 15%).
    """
    id: str
    name: str
    commission_type: Optional[CommissionType] = None
    commission_rate: Optional[Decimal] = None
    per_share_rate: Optional[Decimal] = None
    fixed_commission: Optional[Decimal] = None
    sales_tax_rate: Optional[Decimal] = None
    annual_fee: Decimal = ZERO
    fee_start_date: Optional[date] = None

    def __post_init__(self):
        if self.commission_type is not None:
            object.__setattr__(self, 'commission_type', CommissionType.parse(self.commission_type))
        for name in ('commission_rate', 'per_share_rate', 'fixed_commission', 'sales_tax_rate'):
            if getattr(self, name) is not None:
                object.__setattr__(self, name, to_decimal(getattr(self, name), name))
        object.__setattr__(self, 'annual_fee', to_decimal(self.annual_fee, 'annual_fee'))
        if self.fee_start_date is not None:
            object.__setattr__(self, 'fee_start_date', to_date(self.fee_start_date))

    def fee_schedule(self, base: Optional[FeeSchedule] = None) -> FeeSchedule:
        return (base or FeeSchedule()).with_overrides(
            commission_type=self.commission_type,
            commission_rate=self.commission_rate,
            per_share_rate=self.per_share_rate,
            fixed_commission=self.fixed_commission,
            sales_tax_rate=self.sales_tax_rate,
        )


def _anniversary(start: date, years: int) -> date:
    try:
        return start.replace(year=start.year + years)
    except ValueError:
        # 29 February in a non-leap year
        return start.replace(year=start.year + years, day=28)


def annual_fee_id(broker_id: str, year: int) -> str:
    return f"auto-fee-{broker_id}-{year}"


def generate_annual_fees(brokers: Iterable[Broker],
                         existing: Iterable[Transaction] = (),
                         portfolio_id: str = DEFAULT_PORTFOLIO_ID,
                         today: Optional[date] = None) -> List[Transaction]:
    """
    Generate ANNUAL_FEE transactions that have fallen due.

    One fee is charged on every anniversary of a broker's fee start date up
    to and including ``today``. Ids are deterministic, so fees already in
    ``existing`` are not generated twice.

    Returns:
        New transactions, oldest first per broker
    """
    today = today or date.today()
    existing_ids = {t.id for t in existing}
    generated = []

    for broker in brokers:
        if broker.annual_fee <= 0 or broker.fee_start_date is None:
            continue

        years = 1
        due = _anniversary(broker.fee_start_date, years)
        while due <= today:
            tx_id = annual_fee_id(broker.id, due.year)
            if tx_id not in existing_ids:
                generated.append(Transaction(
                    id=tx_id,
                    portfolio_id=portfolio_id,
                    ticker=ANNUAL_FEE_TICKER,
                    type=TransactionType.ANNUAL_FEE,
                    date=due,
                    quantity=1,
                    price=broker.annual_fee,
                    broker=broker.name,
                    notes=f"Annual Broker Fee ({due.year})",
                ))
                existing_ids.add(tx_id)
            years += 1
            due = _anniversary(broker.fee_start_date, years)

    if generated:
        logger.info(f"Generated {len(generated)} annual broker fee transactions")
    return generated
