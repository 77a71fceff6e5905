"""
Portfolio statistics.

``compute_stats`` folds replayed holdings, realized trades and net dividends
into headline P&L figures. ``summarize_portfolio`` extends those with fee
totals, cash and principal tracking, ROI and the money-weighted return.
"""

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from dataclasses import dataclass, asdict
import logging

from ..core.holding import Holding, RealizedTrade
from ..core.transaction import Transaction, TransactionType, ZERO
from .xirr import build_cash_flows, xirr, DEFAULT_GUESS, MAX_ITERATIONS, TOLERANCE, OTHER_TAX_CATEGORY

logger = logging.getLogger(__name__)

HUNDRED = Decimal('100')


@dataclass(frozen=True)
class PortfolioStats:
    """Headline P&L figures."""
    total_value: Decimal
    total_cost: Decimal
    unrealized_pl: Decimal
    unrealized_pl_percent: Decimal
    realized_pl: Decimal
    total_dividends: Decimal

    def to_dict(self) -> Dict[str, float]:
        return {k: float(v) for k, v in asdict(self).items()}


def _holding_values(holdings: Union[Iterable[Holding], Mapping[object, Holding]]) -> List[Holding]:
    if isinstance(holdings, Mapping):
        return list(holdings.values())
    return list(holdings)


def compute_stats(holdings: Union[Iterable[Holding], Mapping[object, Holding]],
                  realized: Iterable[RealizedTrade],
                  net_dividends: Union[Decimal, float, int] = ZERO) -> PortfolioStats:
    """
    Fold holdings, realized trades and net dividends into PortfolioStats.

    Args:
        holdings: Open holdings (a list, or the mapping returned by the ledger)
        realized: Realized trades
        net_dividends: Dividend income net of withholding tax

    Returns:
        PortfolioStats; the unrealized percentage is 0 when there is no cost
    """
    total_value = ZERO
    total_cost = ZERO
    for h in _holding_values(holdings):
        total_value += h.quantity * h.current_price
        total_cost += h.quantity * h.avg_price

    unrealized_pl = total_value - total_cost
    unrealized_pl_percent = unrealized_pl / total_cost * HUNDRED if total_cost > 0 else ZERO
    realized_pl = sum((t.profit for t in realized), ZERO)

    return PortfolioStats(
        total_value=total_value,
        total_cost=total_cost,
        unrealized_pl=unrealized_pl,
        unrealized_pl_percent=unrealized_pl_percent,
        realized_pl=realized_pl,
        total_dividends=Decimal(str(net_dividends)),
    )


@dataclass(frozen=True)
class PortfolioSummary:
    """Dashboard summary: headline stats plus fees, cash flow and returns."""
    stats: PortfolioStats
    net_realized_pl: Decimal
    history_pl: Decimal
    total_dividend_tax: Decimal
    total_commission: Decimal
    total_sales_tax: Decimal
    total_cdc: Decimal
    total_other_fees: Decimal
    total_cgt: Decimal
    total_deposits: Decimal
    total_withdrawals: Decimal
    operational_expenses: Decimal
    trading_cash_flow: Decimal
    free_cash: Decimal
    cash_investment: Decimal
    net_principal: Decimal
    peak_net_principal: Decimal
    reinvested_profits: Decimal
    roi: Decimal
    daily_pl: Decimal
    daily_pl_percent: Decimal
    mwrr: float

    def to_dict(self) -> Dict[str, float]:
        data = self.stats.to_dict()
        for name, value in asdict(self).items():
            if name != 'stats':
                data[name] = float(value)
        return data


# Event kinds of the principal / profit-buffer replay
IN, OUT, PROFIT, LOSS = "IN", "OUT", "PROFIT", "LOSS"


def _gain_event(when: date, amount: Decimal, index: int) -> Tuple[date, int, str, Decimal]:
    return (when, index, PROFIT, amount) if amount >= 0 else (when, index, LOSS, -amount)


def track_principal(events: Iterable[Tuple[date, int, str, Decimal]]) -> Tuple[Decimal, Decimal]:
    """
    Replay cash events to separate contributed principal from profits.

    Withdrawals are paid out of accumulated profit first and only then reduce
    principal. Events are ordered by date, then by their row index.

    Returns:
        (current principal, peak principal)
    """
    principal = ZERO
    peak = ZERO
    profit_buffer = ZERO

    for _, _, kind, amount in sorted(events, key=lambda e: (e[0], e[1])):
        if kind == IN:
            principal += amount
            peak = max(peak, principal)
        elif kind == OUT:
            if profit_buffer >= amount:
                profit_buffer -= amount
            else:
                principal -= amount - profit_buffer
                profit_buffer = ZERO
        elif kind == LOSS:
            profit_buffer -= amount
        else:
            profit_buffer += amount

    return principal, peak


def summarize_portfolio(transactions: Sequence[Transaction],
                        ledger_result,
                        previous_close: Optional[Mapping[str, Union[Decimal, float]]] = None,
                        as_of: Optional[date] = None,
                        xirr_guess: float = DEFAULT_GUESS,
                        xirr_max_iterations: int = MAX_ITERATIONS,
                        xirr_tolerance: float = TOLERANCE) -> PortfolioSummary:
    """
    Build the full portfolio summary.

    Args:
        transactions: The same slice that was replayed into ``ledger_result``
        ledger_result: LedgerResult from ``replay_ledger``
        previous_close: Ticker -> previous close for daily P&L; missing
            tickers contribute nothing
        as_of: Valuation date for the money-weighted return (defaults to today)

    Returns:
        PortfolioSummary
    """
    holdings = ledger_result.holding_list
    stats = compute_stats(holdings, ledger_result.realized, ledger_result.net_dividends)

    total_commission = total_cdc = total_other_fees = ZERO
    total_sales_tax = total_cgt = history_pl = ZERO
    total_deposits = total_withdrawals = operational_expenses = ZERO
    trading_cash_flow = ZERO
    events = []
    row_index = {}

    for idx, t in enumerate(transactions):
        row_index[t.id] = idx
        total_commission += t.commission
        total_cdc += t.cdc_charges
        total_other_fees += t.other_fees

        if t.type == TransactionType.DEPOSIT:
            total_deposits += t.price
            events.append((t.date, idx, IN, t.price))
        elif t.type == TransactionType.WITHDRAWAL:
            total_withdrawals += t.price
            events.append((t.date, idx, OUT, t.price))
        elif t.type == TransactionType.ANNUAL_FEE:
            operational_expenses += t.price
            events.append((t.date, idx, LOSS, t.price))
        elif t.type == TransactionType.OTHER:
            if t.category == OTHER_TAX_CATEGORY or t.price < 0:
                operational_expenses += abs(t.price)
                events.append((t.date, idx, LOSS, abs(t.price)))
            else:
                total_deposits += t.price
                events.append((t.date, idx, IN, t.price))
        elif t.type == TransactionType.DIVIDEND:
            net = t.gross_amount - t.tax
            if net >= 0:
                events.append((t.date, idx, PROFIT, net))
        elif t.type == TransactionType.TAX:
            total_cgt += t.price
            events.append((t.date, idx, LOSS, t.price))
        elif t.type == TransactionType.HISTORY:
            total_cgt += t.tax
            history_pl += t.price
            events.append(_gain_event(t.date, t.price, idx))
        else:
            total_sales_tax += t.tax
            if t.type == TransactionType.BUY:
                trading_cash_flow -= t.gross_amount + t.total_fees
            else:
                trading_cash_flow += t.gross_amount - t.total_fees

    for trade in ledger_result.realized:
        events.append(_gain_event(trade.date, trade.profit, row_index.get(trade.id, len(row_index))))

    principal, peak_principal = track_principal(events)
    net_principal = max(ZERO, principal)

    net_realized_pl = stats.realized_pl - total_cgt
    free_cash = (total_deposits - (total_withdrawals + total_cgt + operational_expenses)
                 + trading_cash_flow + history_pl)

    capital_gain_net = net_realized_pl + stats.unrealized_pl - operational_expenses
    total_net_return = capital_gain_net + stats.total_dividends
    roi_denominator = peak_principal if peak_principal > 0 else Decimal('1')
    roi = total_net_return / roi_denominator * HUNDRED

    daily_pl = ZERO
    closes = previous_close or {}
    for h in holdings:
        close = closes.get(h.ticker)
        if close is not None:
            daily_pl += (h.current_price - Decimal(str(close))) * h.quantity
    yesterday_value = stats.total_value - daily_pl
    daily_pl_percent = daily_pl / yesterday_value * HUNDRED if yesterday_value > 0 else ZERO

    cash_flows = build_cash_flows(transactions, stats.total_value + free_cash, as_of)
    mwrr = xirr(cash_flows, guess=xirr_guess, max_iterations=xirr_max_iterations, tolerance=xirr_tolerance)

    logger.debug(f"Summary: value={stats.total_value} free_cash={free_cash} roi={roi} mwrr={mwrr}")

    return PortfolioSummary(
        stats=stats,
        net_realized_pl=net_realized_pl,
        history_pl=history_pl,
        total_dividend_tax=ledger_result.dividends.tax,
        total_commission=total_commission,
        total_sales_tax=total_sales_tax,
        total_cdc=total_cdc,
        total_other_fees=total_other_fees,
        total_cgt=total_cgt,
        total_deposits=total_deposits,
        total_withdrawals=total_withdrawals,
        operational_expenses=operational_expenses,
        trading_cash_flow=trading_cash_flow,
        free_cash=free_cash,
        cash_investment=total_deposits - total_withdrawals,
        net_principal=net_principal,
        peak_net_principal=peak_principal,
        reinvested_profits=max(ZERO, stats.total_cost - net_principal),
        roi=roi,
        daily_pl=daily_pl,
        daily_pl_percent=daily_pl_percent,
        mwrr=mwrr,
    )
