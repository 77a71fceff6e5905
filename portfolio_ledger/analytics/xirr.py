"""
XIRR (money-weighted return) for irregularly dated cash flows.

Solves NPV(r) = sum(amount_i * (1 + r) ** -t_i) = 0 with Newton-Raphson,
where t_i is the actual/365 year fraction from the earliest flow.
"""

from datetime import datetime, date, timezone
from decimal import Decimal
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union
import logging
import math

import numpy as np

from ..core.transaction import Transaction, TransactionType, to_date

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365.0
DEFAULT_GUESS = 0.1
MAX_ITERATIONS = 50
TOLERANCE = 1e-7
MIN_DERIVATIVE = 1e-9
RATE_FLOOR = -0.99999999

OTHER_TAX_CATEGORY = "OTHER_TAX"


class CashFlow(NamedTuple):
    """Signed cash flow: negative = money in (deposit), positive = money out."""
    amount: float
    date: Union[date, datetime]


FlowLike = Union[CashFlow, Tuple[Union[float, Decimal], Union[date, datetime, str]]]


def _as_datetime(value) -> Optional[datetime]:
    """Naive datetime for a flow date; aware values are converted to UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        d = to_date(value)
    except ValueError:
        return None
    return datetime(d.year, d.month, d.day)


def _prepare(cash_flows: Iterable[FlowLike]) -> List[Tuple[float, datetime]]:
    """Drop zero amounts and undated flows, then sort by date."""
    flows = []
    for amount, when in cash_flows:
        amount = float(amount)
        when = _as_datetime(when)
        if amount == 0 or when is None or not math.isfinite(amount):
            continue
        flows.append((amount, when))
    flows.sort(key=lambda f: f[1])
    return flows


def xirr(cash_flows: Iterable[FlowLike],
         guess: float = DEFAULT_GUESS,
         max_iterations: int = MAX_ITERATIONS,
         tolerance: float = TOLERANCE) -> float:
    """
    Calculate XIRR using the Newton-Raphson method.

    Args:
        cash_flows: (amount, date) pairs; negative amounts are money put in
        guess: Initial rate (0.10 = 10%)
        max_iterations: Iteration cap
        tolerance: Stop once |NPV| falls below this

    Returns:
        float: Annualized rate in percent (12.0 for 12%). 0 when there are
        fewer than two flows or no mix of signs; 0 is "undeterminable", not
        a literal 0% return. A stalled or diverging iteration returns the
        last finite rate reached.
    """
    flows = _prepare(cash_flows)
    if len(flows) < 2:
        return 0.0

    amounts = np.array([f[0] for f in flows], dtype=float)
    if not (amounts > 0).any() or not (amounts < 0).any():
        return 0.0

    start = flows[0][1]
    years = np.array([(f[1] - start).total_seconds() / 86400.0 / DAYS_PER_YEAR for f in flows])

    rate = float(guess)
    converged = False
    with np.errstate(over='ignore', divide='ignore', invalid='ignore'):
        for _ in range(max_iterations):
            if rate <= -1:
                rate = RATE_FLOOR

            base = 1.0 + rate
            npv = float(np.sum(amounts * np.power(base, -years)))
            npv_prime = float(np.sum(-years * amounts * np.power(base, -years - 1)))

            if abs(npv) < tolerance:
                converged = True
                break

            if abs(npv_prime) < MIN_DERIVATIVE:
                # Stationary point, Newton cannot take a step
                break

            next_rate = rate - npv / npv_prime
            if not math.isfinite(next_rate):
                break
            rate = next_rate

    if not converged:
        logger.warning(f"XIRR did not converge over {len(flows)} cash flows, last rate {rate:.6f}")

    return rate * 100 if math.isfinite(rate) else 0.0


def npv(rate: float, cash_flows: Iterable[FlowLike]) -> float:
    """Net present value of the flows at an annual rate, discounted to the first flow."""
    flows = _prepare(cash_flows)
    if not flows:
        return 0.0
    start = flows[0][1]
    amounts = np.array([f[0] for f in flows])
    years = np.array([(f[1] - start).total_seconds() / 86400.0 / DAYS_PER_YEAR for f in flows])
    return float(np.sum(amounts * np.power(1.0 + rate, -years)))


def is_external_deposit(transaction: Transaction) -> bool:
    """DEPOSIT rows, and OTHER adjustments that add money and are not taxes."""
    if transaction.type == TransactionType.DEPOSIT:
        return True
    return (transaction.type == TransactionType.OTHER
            and transaction.price >= 0
            and transaction.category != OTHER_TAX_CATEGORY)


def build_cash_flows(transactions: Sequence[Transaction],
                     terminal_value: Union[Decimal, float] = 0,
                     as_of: Optional[date] = None) -> List[CashFlow]:
    """
    Derive the external cash-flow series of a portfolio.

    Deposits become negative flows, withdrawals positive ones, and a positive
    terminal value (holdings at market plus free cash) closes the series on
    ``as_of`` (defaults to today).
    """
    flows = []
    for t in transactions:
        if is_external_deposit(t):
            flows.append(CashFlow(-abs(float(t.price)), t.date))
        elif t.type == TransactionType.WITHDRAWAL:
            flows.append(CashFlow(abs(float(t.price)), t.date))

    if terminal_value and float(terminal_value) > 0:
        flows.append(CashFlow(float(terminal_value), as_of or date.today()))
    return flows
