#!/usr/bin/env python3
"""
Test cases for portfolio statistics and the portfolio summary
"""

from datetime import date
from decimal import Decimal

import pytest

from portfolio_ledger import Transaction, TransactionType, replay_ledger, compute_stats
from portfolio_ledger.analytics.statistics import summarize_portfolio, track_principal, IN, OUT, PROFIT, LOSS
from portfolio_ledger.analytics.xirr import xirr
from portfolio_ledger.core.holding import Holding


def make_tx(tx_type, day, ticker="CASH", qty=0, price=0, **kwargs):
    return Transaction(ticker=ticker, type=tx_type, date=day, quantity=qty, price=price, **kwargs)


def create_sample_transactions():
    """Deposit, round trip in ABC, dividend, CGT, annual fee and a withdrawal"""
    return [
        make_tx(TransactionType.DEPOSIT, "2024-01-01", price=2000),
        make_tx(TransactionType.BUY, "2024-01-02", ticker="ABC", qty=100, price=10, commission=10),
        make_tx(TransactionType.SELL, "2024-02-01", ticker="ABC", qty=50, price=12, commission=5),
        make_tx(TransactionType.DIVIDEND, "2024-03-01", ticker="ABC", qty=50, price=2, tax=15),
        make_tx(TransactionType.TAX, "2024-03-15", ticker="CGT", price=9),
        make_tx(TransactionType.ANNUAL_FEE, "2024-04-01", ticker="ANNUAL FEE", qty=1, price=20),
        make_tx(TransactionType.WITHDRAWAL, "2024-05-01", price=300),
    ]


def create_summary(transactions=None, previous_close=None):
    transactions = transactions if transactions is not None else create_sample_transactions()
    result = replay_ledger(transactions, prices={'ABC': 11})
    return summarize_portfolio(transactions, result, previous_close=previous_close, as_of=date(2024, 12, 31))


def test_compute_stats_from_replay():
    result = replay_ledger(create_sample_transactions(), prices={'ABC': 11})

    stats = compute_stats(result.holdings, result.realized, result.net_dividends)

    assert stats.total_value == Decimal('550')
    assert stats.total_cost == Decimal('505')
    assert stats.unrealized_pl == Decimal('45')
    assert float(stats.unrealized_pl_percent) == pytest.approx(45 / 505 * 100)
    assert stats.realized_pl == Decimal('90')
    assert stats.total_dividends == Decimal('85')


def test_compute_stats_accepts_list_or_mapping():
    result = replay_ledger(create_sample_transactions(), prices={'ABC': 11})

    from_mapping = compute_stats(result.holdings, result.realized, result.net_dividends)
    from_list = compute_stats(result.holding_list, result.realized, result.net_dividends)

    assert from_mapping == from_list


def test_compute_stats_zero_cost_guard():
    """No cost means a 0 percentage, not a division error"""
    stats = compute_stats([], [], 0)

    assert stats.total_value == 0
    assert stats.total_cost == 0
    assert stats.unrealized_pl_percent == 0
    assert stats.realized_pl == 0


def test_compute_stats_zero_cost_holding():
    free_shares = Holding("GIFT", "Alpha")
    free_shares.quantity = Decimal('10')
    free_shares.current_price = Decimal('5')

    stats = compute_stats([free_shares], [], 0)

    assert stats.total_value == Decimal('50')
    assert stats.unrealized_pl == Decimal('50')
    assert stats.unrealized_pl_percent == 0


def test_stats_to_dict_is_float():
    stats = compute_stats([], [], Decimal('12.5'))

    assert stats.to_dict()['total_dividends'] == 12.5


def test_summary_fee_and_cash_totals():
    summary = create_summary()

    assert summary.total_commission == Decimal('15')
    assert summary.total_sales_tax == Decimal('0')
    assert summary.total_cgt == Decimal('9')
    assert summary.net_realized_pl == Decimal('81')
    assert summary.total_dividend_tax == Decimal('15')
    assert summary.total_deposits == Decimal('2000')
    assert summary.total_withdrawals == Decimal('300')
    assert summary.operational_expenses == Decimal('20')
    assert summary.trading_cash_flow == Decimal('-415')
    assert summary.free_cash == Decimal('1256')
    assert summary.cash_investment == Decimal('1700')


def test_summary_withdrawal_draws_on_profits_first():
    """Profit buffer 146 absorbs part of the 300 withdrawal; principal takes the rest"""
    summary = create_summary()

    assert summary.peak_net_principal == Decimal('2000')
    assert summary.net_principal == Decimal('1846')
    assert summary.reinvested_profits == Decimal('0')


def test_summary_roi_uses_peak_principal():
    summary = create_summary()

    # (81 + 45 - 20 + 85) / 2000
    assert summary.roi == Decimal('9.55')


def test_summary_daily_pl():
    summary = create_summary(previous_close={'ABC': 10.5, 'XYZ': 3})

    assert summary.daily_pl == Decimal('25')
    assert float(summary.daily_pl_percent) == pytest.approx(25 / 525 * 100)


def test_summary_daily_pl_without_closes():
    summary = create_summary()

    assert summary.daily_pl == 0
    assert summary.daily_pl_percent == 0


def test_summary_money_weighted_return():
    summary = create_summary()

    expected = xirr([
        (-2000, date(2024, 1, 1)),
        (300, date(2024, 5, 1)),
        (1806, date(2024, 12, 31)),
    ])
    assert summary.mwrr == pytest.approx(expected)
    assert summary.mwrr > 0


def test_summary_history_and_other_rows():
    transactions = [
        make_tx(TransactionType.DEPOSIT, "2024-01-01", price=1000),
        make_tx(TransactionType.HISTORY, "2024-01-05", ticker="PREV-PNL", price=100, tax=10),
        make_tx(TransactionType.OTHER, "2024-01-06", ticker="OTHER FEE", price=50, category="OTHER_TAX"),
        make_tx(TransactionType.OTHER, "2024-01-07", ticker="BONUS", price=500),
        make_tx(TransactionType.OTHER, "2024-01-08", ticker="ADJUSTMENT", price=-30),
    ]

    summary = create_summary(transactions)

    assert summary.history_pl == Decimal('100')
    assert summary.total_cgt == Decimal('10')
    assert summary.operational_expenses == Decimal('80')
    assert summary.total_deposits == Decimal('1500')
    assert summary.free_cash == Decimal('1500') - Decimal('90') + Decimal('100')
    assert summary.stats.realized_pl == 0


def test_summary_other_fees_reduce_trading_cash_only():
    transactions = [
        make_tx(TransactionType.DEPOSIT, "2024-01-01", price=1000),
        make_tx(TransactionType.BUY, "2024-01-02", ticker="ABC", qty=10, price=10, tax=1, other_fees=4),
    ]

    summary = create_summary(transactions)

    assert summary.total_other_fees == Decimal('4')
    assert summary.total_sales_tax == Decimal('1')
    assert summary.trading_cash_flow == Decimal('-105')
    assert summary.stats.total_cost == Decimal('101')


def test_summary_to_dict_flattens_stats():
    data = create_summary().to_dict()

    assert data['total_value'] == 550.0
    assert data['free_cash'] == 1256.0
    assert 'stats' not in data


def test_track_principal_order():
    events = [
        (date(2024, 1, 1), 0, IN, Decimal('1000')),
        (date(2024, 2, 1), 2, OUT, Decimal('400')),
        (date(2024, 1, 15), 1, PROFIT, Decimal('150')),
        (date(2024, 3, 1), 3, LOSS, Decimal('50')),
        (date(2024, 4, 1), 4, IN, Decimal('100')),
    ]

    principal, peak = track_principal(events)

    assert principal == Decimal('850')
    assert peak == Decimal('1000')


if __name__ == "__main__":
    pytest.main([__file__])
