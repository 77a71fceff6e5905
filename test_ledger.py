#!/usr/bin/env python3
"""
Test cases for the average-cost ledger replay
"""

import random
from decimal import Decimal

import pytest

from portfolio_ledger import Transaction, TransactionType, HoldingKey, replay_ledger
from portfolio_ledger.core.ledger import sort_transactions, MULTIPLE_BROKERS


def make_tx(tx_type, ticker="ABC", qty=0, price=0, day="2024-01-01", **kwargs):
    """Helper function to build a transaction"""
    return Transaction(ticker=ticker, type=tx_type, date=day, quantity=qty, price=price, **kwargs)


def buy(qty, price, day="2024-01-01", **kwargs):
    return make_tx(TransactionType.BUY, qty=qty, price=price, day=day, **kwargs)


def sell(qty, price, day="2024-01-02", **kwargs):
    return make_tx(TransactionType.SELL, qty=qty, price=price, day=day, **kwargs)


def only_holding(result):
    assert len(result.holdings) == 1
    return result.holding_list[0]


def test_buy_then_partial_sell_scenario():
    """BUY 100 @ 10 (comm 10) then SELL 50 @ 12 (fees 5)"""
    result = replay_ledger([
        buy(100, 10, commission=10),
        sell(50, 12, commission=5),
    ])

    holding = only_holding(result)
    assert holding.quantity == Decimal('50')
    assert holding.avg_price == Decimal('10.10')
    assert holding.total_commission == Decimal('5')

    assert len(result.realized) == 1
    trade = result.realized[0]
    assert trade.quantity == Decimal('50')
    assert trade.buy_avg == Decimal('10.10')
    assert trade.sell_price == Decimal('12')
    assert trade.fees == Decimal('5')
    assert trade.profit == Decimal('90')


def test_buy_fees_enter_average_price():
    """Commission, tax and CDC all enter the cost basis; other fees do not"""
    result = replay_ledger([buy(100, 10, commission=6, tax=3, cdc_charges=1, other_fees=50)])

    holding = only_holding(result)
    assert holding.avg_price == Decimal('10.10')
    assert holding.total_commission == Decimal('6')
    assert holding.total_tax == Decimal('3')
    assert holding.total_cdc == Decimal('1')


def test_average_price_is_batching_invariant():
    """Several buys give the same average as one fee-inclusive weighted average"""
    lots = [(10, 5.0, 1), (20, 6.0, 2), (30, 7.5, 0), (7, 11.25, 3)]
    transactions = [buy(q, p, day=f"2024-01-0{i + 1}", commission=c) for i, (q, p, c) in enumerate(lots)]

    holding = only_holding(replay_ledger(transactions))

    total_qty = sum(q for q, _, _ in lots)
    expected = sum(q * p + c for q, p, c in lots) / total_qty
    assert holding.quantity == Decimal(total_qty)
    assert float(holding.avg_price) == pytest.approx(expected)


def test_sell_keeps_average_price():
    """Sells reduce quantity but never move the average"""
    result = replay_ledger([
        buy(100, 10),
        buy(100, 20, day="2024-01-02"),
        sell(30, 50, day="2024-01-03"),
        sell(70, 1, day="2024-01-04"),
    ])

    holding = only_holding(result)
    assert holding.quantity == Decimal('100')
    assert holding.avg_price == Decimal('15')
    assert [t.buy_avg for t in result.realized] == [Decimal('15'), Decimal('15')]


def test_realized_profit_plus_fees_identity():
    """profit + fees == quantity * (sell_price - buy_avg) for every sale"""
    result = replay_ledger([
        buy(100, 10, commission=10),
        sell(50, 12, commission=5),
        buy(40, 9.5, day="2024-01-03", commission=2, tax=0.3, cdc_charges=0.2),
        sell(25, 8.75, day="2024-01-04", commission=1.5, tax=0.25),
        sell(65, 13, day="2024-01-05", cdc_charges=0.35),
    ])

    assert len(result.realized) == 3
    for trade in result.realized:
        assert trade.profit + trade.fees == trade.quantity * (trade.sell_price - trade.buy_avg)


def test_identity_with_repeating_average():
    """BUY 3 @ 10 with commission 1 gives a non-terminating 31/3 average"""
    result = replay_ledger([
        buy(3, 10, commission=1),
        sell(2, 12, commission=1),
    ])

    trade = result.realized[0]
    assert trade.buy_avg == Decimal('10.3333333333')
    assert trade.profit == Decimal('2.3333333334')
    assert trade.profit + trade.fees == trade.quantity * (trade.sell_price - trade.buy_avg)
    assert only_holding(result).avg_price == trade.buy_avg


def test_identity_holds_across_random_sequences():
    """Seeded BUY, BUY, SELL sequences with 4 dp prices and 2 dp commissions"""
    rng = random.Random(20240101)

    def price():
        return Decimal(rng.randint(1, 50_000_000)) / 10000

    def commission():
        return Decimal(rng.randint(0, 100_000)) / 100

    for _ in range(500):
        result = replay_ledger([
            buy(rng.randint(1, 5000), price(), commission=commission(), tax=commission()),
            buy(Decimal(rng.randint(1, 50000)) / 7 if rng.random() < 0.3 else rng.randint(1, 5000),
                price(), day="2024-01-02", cdc_charges=commission()),
            sell(rng.randint(1, 8000), price(), day="2024-01-03", commission=commission()),
        ])

        trade = result.realized[0]
        assert trade.profit + trade.fees == trade.quantity * (trade.sell_price - trade.buy_avg)


def test_fee_accumulators_written_down_pro_rata():
    """A sale writes down accumulated fees by the fraction sold, not by its own fees"""
    result = replay_ledger([
        buy(100, 10, commission=20, tax=8, cdc_charges=4),
        sell(25, 11, commission=100),
    ])

    holding = only_holding(result)
    assert holding.total_commission == Decimal('15')
    assert holding.total_tax == Decimal('6')
    assert holding.total_cdc == Decimal('3')


def test_oversell_is_capped_at_held_quantity():
    """Selling more than held sells what is held and closes the position"""
    result = replay_ledger([
        buy(10, 10),
        sell(25, 12),
    ])

    assert result.holdings == {}
    assert len(result.realized) == 1
    trade = result.realized[0]
    assert trade.quantity == Decimal('10')
    assert trade.profit == Decimal('20')


def test_oversell_never_leaves_negative_quantity():
    """Quantity stays non-negative through repeated oversells"""
    result = replay_ledger([
        buy(10, 10),
        sell(15, 12),
        buy(5, 11, day="2024-01-03"),
        sell(50, 9, day="2024-01-04"),
    ])

    assert result.holdings == {}
    assert [t.quantity for t in result.realized] == [Decimal('10'), Decimal('5')]


def test_sell_without_holding_realizes_nothing():
    """A sale with nothing held emits no realized trade"""
    result = replay_ledger([sell(10, 12)])

    assert result.holdings == {}
    assert result.realized == []


def test_replay_is_idempotent():
    """Replaying the same list twice gives identical holdings and trades"""
    transactions = [
        buy(100, 10, commission=10, broker="A"),
        buy(50, 12, day="2024-01-02", broker="B"),
        sell(30, 14, day="2024-01-03", commission=2, broker="A"),
        make_tx(TransactionType.DIVIDEND, qty=120, price=1, day="2024-01-04", tax=12),
    ]

    first = replay_ledger(transactions, prices={'ABC': 13})
    second = replay_ledger(transactions, prices={'ABC': 13})

    assert first.holdings == second.holdings
    assert first.realized == second.realized
    assert first.net_dividends == second.net_dividends


def test_dividend_scenario_does_not_touch_holding():
    """DIVIDEND qty=100 price=2 tax=30 adds 170 and leaves the holding alone"""
    result = replay_ledger([
        buy(100, 10),
        make_tx(TransactionType.DIVIDEND, qty=100, price=2, tax=30, day="2024-01-05"),
    ])

    holding = only_holding(result)
    assert holding.quantity == Decimal('100')
    assert holding.avg_price == Decimal('10')
    assert result.net_dividends == Decimal('170')


def test_dividend_total_independent_of_row_order():
    """Moving dividend rows around the trades does not change the total"""
    trades = [buy(100, 10), sell(40, 12, day="2024-02-01"), buy(10, 11, day="2024-03-01")]
    dividends = [
        make_tx(TransactionType.DIVIDEND, qty=100, price=2, tax=30, day="2024-01-15"),
        make_tx(TransactionType.DIVIDEND, qty=70, price=1.5, tax=10, day="2024-04-15"),
    ]

    before = replay_ledger(dividends + trades)
    after = replay_ledger(trades + dividends)
    interleaved = replay_ledger([trades[0], dividends[1], trades[1], dividends[0], trades[2]])

    assert before.net_dividends == after.net_dividends == interleaved.net_dividends == Decimal('265')
    assert before.holdings == after.holdings == interleaved.holdings


def test_quantity_below_epsilon_is_dropped():
    """0.00005 left after selling is treated as closed"""
    result = replay_ledger([buy(1, 10), sell(Decimal('0.99995'), 11)])

    assert result.holdings == {}
    assert len(result.realized) == 1


def test_quantity_above_epsilon_is_kept():
    result = replay_ledger([buy(1, 10), sell(Decimal('0.9998'), 11)])

    holding = only_holding(result)
    assert holding.quantity == Decimal('0.0002')


def test_same_day_buy_is_booked_before_sell():
    """Same-day rows are ordered BUY, DIVIDEND, SELL regardless of input order"""
    result = replay_ledger([
        sell(50, 12, day="2024-01-01"),
        make_tx(TransactionType.DIVIDEND, qty=100, price=1, day="2024-01-01"),
        buy(100, 10, day="2024-01-01"),
    ])

    assert len(result.realized) == 1
    assert result.realized[0].buy_avg == Decimal('10')
    assert only_holding(result).quantity == Decimal('50')


def test_sort_is_stable_for_equal_rows():
    first = buy(10, 10, notes="first")
    second = buy(10, 20, notes="second")
    deposit = make_tx(TransactionType.DEPOSIT, ticker="CASH", price=100)

    ordered = sort_transactions([deposit, first, second])

    assert [t.notes for t in ordered[:2]] == ["first", "second"]
    assert ordered[-1] is deposit


def test_holdings_grouped_by_ticker_and_broker():
    transactions = [
        buy(10, 10, broker="Alpha"),
        buy(10, 20, broker="Beta"),
        buy(5, 30),
    ]

    result = replay_ledger(transactions)

    assert set(result.holdings) == {
        HoldingKey("ABC", "Alpha"), HoldingKey("ABC", "Beta"), HoldingKey("ABC", "Unknown"),
    }
    assert result.get("ABC", "Beta").avg_price == Decimal('20')
    assert result.get("ABC", "Unknown").broker == "Unknown"


def test_combined_brokers_share_one_ledger():
    transactions = [
        buy(10, 10, broker="Alpha"),
        buy(10, 20, broker="Beta"),
        sell(5, 25, day="2024-01-03", broker="Beta"),
    ]

    result = replay_ledger(transactions, combine_brokers=True)

    holding = only_holding(result)
    assert HoldingKey("ABC") in result.holdings
    assert holding.quantity == Decimal('15')
    assert holding.avg_price == Decimal('15')
    assert holding.broker == MULTIPLE_BROKERS
    assert result.realized[0].broker == "Beta"


def test_broker_filter_restricts_rows():
    transactions = [
        buy(10, 10, broker="Alpha"),
        buy(10, 20, broker="Beta"),
        make_tx(TransactionType.DIVIDEND, qty=10, price=1, broker="Beta"),
    ]

    result = replay_ledger(transactions, combine_brokers=True, broker_filter="Alpha")

    holding = only_holding(result)
    assert holding.quantity == Decimal('10')
    assert holding.broker == "Alpha"
    assert result.net_dividends == Decimal('0')


def test_current_price_override_and_cost_fallback():
    transactions = [
        buy(10, 10),
        make_tx(TransactionType.BUY, ticker="XYZ", qty=5, price=4),
        make_tx(TransactionType.BUY, ticker="ZERO", qty=5, price=7),
    ]

    result = replay_ledger(transactions, prices={"ABC": 12.5, "ZERO": 0})

    assert result.get("ABC", "Unknown").current_price == Decimal('12.5')
    assert result.get("XYZ", "Unknown").current_price == Decimal('4')
    assert result.get("ZERO", "Unknown").current_price == Decimal('7')


def test_price_keys_are_case_insensitive():
    result = replay_ledger([buy(10, 5)], prices={" abc ": 7})

    assert only_holding(result).current_price == Decimal('7')


def test_non_trade_rows_do_not_create_holdings():
    transactions = [
        make_tx(TransactionType.DEPOSIT, ticker="CASH", price=1000),
        make_tx(TransactionType.WITHDRAWAL, ticker="CASH", price=100),
        make_tx(TransactionType.TAX, ticker="CGT", price=10),
        make_tx(TransactionType.HISTORY, ticker="PREV-PNL", price=50),
        make_tx(TransactionType.ANNUAL_FEE, ticker="ANNUAL FEE", price=20),
        make_tx(TransactionType.OTHER, ticker="ADJUSTMENT", price=-5),
    ]

    result = replay_ledger(transactions)

    assert result.holdings == {}
    assert result.realized == []
    assert result.net_dividends == Decimal('0')


def test_degenerate_numbers_never_raise():
    """Zero and negative quantities are arithmetic, not errors"""
    transactions = [
        buy(0, 10, commission=5),
        buy(10, 0),
        sell(0, 10, day="2024-01-03"),
        sell(-5, 10, day="2024-01-04"),
        make_tx(TransactionType.DIVIDEND, qty=0, price=0, tax=3),
        make_tx(TransactionType.BUY, ticker="NEG", qty=-1, price=10),
    ]

    result = replay_ledger(transactions)

    assert result.net_dividends == Decimal('-3')
    assert all(t.quantity <= 0 for t in result.realized)


if __name__ == "__main__":
    pytest.main([__file__])
