#!/usr/bin/env python3
"""
Portfolio Ledger Report
Main entry point: replays a transaction file and prints holdings, realized
trades and portfolio statistics.
"""

import argparse
import sys
import os
import json
import logging
from datetime import date

from portfolio_ledger import Portfolio, TransactionStore
from portfolio_ledger.data.ingestion import DataIngestion, holdings_to_frame, realized_to_frame

logger = logging.getLogger(__name__)


def run_report(transactions_path, prices_path=None, config_path=None, portfolio_id=None,
               broker=None, combine_brokers=False, output_dir=None, as_of=None):
    """
    Run the portfolio report.

    Args:
        transactions_path: Path to transactions CSV / JSON file
        prices_path: Path to current prices JSON / CSV file
        config_path: Path to configuration JSON file
        portfolio_id: Portfolio to report on (defaults to the only / first one)
        broker: Restrict the replay to one broker
        combine_brokers: Merge the same ticker across brokers
        output_dir: Directory for CSV / JSON reports
        as_of: Valuation date for the money-weighted return
    """
    print("\n" + "=" * 60)
    print("PORTFOLIO LEDGER REPORT")
    print("=" * 60)

    print("\n1. Loading data...")
    ingestion = DataIngestion(config_path)
    ingestion.load_transactions(transactions_path)
    if prices_path:
        ingestion.load_prices(prices_path)

    config = ingestion.config
    if broker is not None:
        config.broker_filter = broker
    if combine_brokers:
        config.combine_brokers = True

    store: TransactionStore = ingestion.store
    portfolio_ids = store.portfolio_ids()
    if portfolio_id is None:
        portfolio_id = portfolio_ids[0] if portfolio_ids else "default"
    elif portfolio_id not in portfolio_ids:
        raise ValueError(f"Unknown portfolio {portfolio_id!r}; available: {', '.join(portfolio_ids)}")

    portfolio = Portfolio(portfolio_id, store=store, config=config)
    portfolio.update_prices(ingestion.prices)

    print(f"   ✓ Transactions: {len(portfolio.transactions())} in portfolio {portfolio_id}")
    print(f"   ✓ Prices: {len(ingestion.prices)}")

    print("\n2. Replaying ledger...")
    result = portfolio.replay()
    summary = portfolio.get_summary(as_of=as_of, result=result)
    stats = summary.stats

    holdings_df = holdings_to_frame(result.holding_list)
    realized_df = realized_to_frame(result.realized)
    performance_df = portfolio.get_performance()

    print(f"\nHoldings ({len(holdings_df)}):")
    if len(holdings_df):
        print(holdings_df[['ticker', 'broker', 'quantity', 'avg_price', 'current_price',
                           'market_value', 'unrealized_pnl']].to_string(index=False))

    print(f"\nRealized Trades ({len(realized_df)}):")
    if len(realized_df):
        print(realized_df[['date', 'ticker', 'quantity', 'buy_avg', 'sell_price', 'fees',
                           'profit']].to_string(index=False))

    print(f"\nKey Results:")
    print(f"• Total Value: {stats.total_value:,.2f}")
    print(f"• Total Cost: {stats.total_cost:,.2f}")
    print(f"• Unrealized P&L: {stats.unrealized_pl:,.2f} ({stats.unrealized_pl_percent:.2f}%)")
    print(f"• Realized P&L: {stats.realized_pl:,.2f} (net of CGT {summary.net_realized_pl:,.2f})")
    print(f"• Net Dividends: {stats.total_dividends:,.2f}")
    print(f"• Free Cash: {summary.free_cash:,.2f}")
    print(f"• ROI: {summary.roi:.2f}%")
    if summary.mwrr:
        print(f"• Money-Weighted Return: {summary.mwrr:.2f}%")
    else:
        print(f"• Money-Weighted Return: n/a")

    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
        holdings_df.to_csv(os.path.join(output_dir, 'holdings.csv'), index=False)
        realized_df.to_csv(os.path.join(output_dir, 'realized_trades.csv'), index=False)
        performance_df.to_csv(os.path.join(output_dir, 'performance.csv'), index=False)
        with open(os.path.join(output_dir, 'summary.json'), 'w') as f:
            json.dump(portfolio.get_portfolio_summary(as_of=as_of), f, indent=2, default=str)
        print(f"\n   ✓ Reports saved to {output_dir}")

    return summary


def main(argv=None):
    parser = argparse.ArgumentParser(description="Replay a transaction log into holdings and P&L")
    parser.add_argument("--transactions", required=True, help="Transactions CSV or JSON file path")
    parser.add_argument("--prices", default=None, help="Current prices JSON or CSV file path")
    parser.add_argument("--config", default=None, help="Configuration file path")
    parser.add_argument("--portfolio", default=None, help="Portfolio id")
    parser.add_argument("--broker", default=None, help="Only include this broker")
    parser.add_argument("--combine-brokers", action="store_true", help="Merge tickers across brokers")
    parser.add_argument("--as-of", default=None, help="Valuation date (YYYY-MM-DD)")
    parser.add_argument("--output", default=None, help="Output directory")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(asctime)s %(name)s %(levelname)s %(message)s")

    try:
        as_of = date.fromisoformat(args.as_of) if args.as_of else None
        run_report(args.transactions, args.prices, args.config, args.portfolio,
                   args.broker, args.combine_brokers, args.output, as_of)
    except Exception as e:
        logger.exception("Report failed")
        print(f"\n❌ Report failed with error: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
