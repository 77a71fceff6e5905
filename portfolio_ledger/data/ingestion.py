"""
Data Ingestion Module
Handles loading transactions, prices and configuration from CSV and JSON
files, and exporting ledger output as DataFrames.
"""

import pandas as pd
import json
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from pathlib import Path

from ..config import LedgerConfig, load_config
from ..core.holding import Holding, RealizedTrade
from ..core.transaction import Transaction, TransactionStore

logger = logging.getLogger(__name__)

# CSV headers as exported by the web client, mapped to record keys
COLUMN_ALIASES = {
    'portfolioid': 'portfolioId',
    'portfolio_id': 'portfolioId',
    'cdccharges': 'cdcCharges',
    'cdc_charges': 'cdcCharges',
    'cdc': 'cdcCharges',
    'otherfees': 'otherFees',
    'other_fees': 'otherFees',
    'symbol': 'ticker',
    'qty': 'quantity',
}


class DataIngestion:
    """
    Loading and export of portfolio data.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize DataIngestion with configuration.

        Args:
            config_path: Path to configuration JSON file (defaults apply when None)
        """
        self.config = self.load_config(config_path) if config_path else LedgerConfig()
        self.store = TransactionStore()
        self.prices: Dict[str, Decimal] = {}

    def load_config(self, config_path: str) -> LedgerConfig:
        """Load configuration from JSON file."""
        return load_config(config_path)

    @staticmethod
    def _normalise_columns(df: pd.DataFrame) -> pd.DataFrame:
        renamed = {}
        for col in df.columns:
            key = str(col).strip()
            renamed[col] = COLUMN_ALIASES.get(key.lower(), key)
        return df.rename(columns=renamed)

    @staticmethod
    def records_from_frame(df: pd.DataFrame) -> List[Dict]:
        """Convert a transactions DataFrame to records with NaN cells dropped."""
        df = DataIngestion._normalise_columns(df)
        df = df.astype(object).where(df.notna(), None)
        return [{k: v for k, v in row.items() if v is not None} for row in df.to_dict(orient='records')]

    def load_transactions(self, transactions_path: str) -> List[Transaction]:
        """
        Load transactions from a CSV file or a JSON list of records.

        Args:
            transactions_path: Path to .csv or .json file

        Returns:
            List of transactions, also added to ``self.store``

        Raises:
            ValueError: if a row cannot be parsed
        """
        path = Path(transactions_path)
        if path.suffix.lower() == '.json':
            with open(path, 'r') as f:
                payload = json.load(f)
            if isinstance(payload, dict):
                payload = payload.get('transactions', [])
            records = self.records_from_frame(pd.DataFrame(payload))
        else:
            records = self.records_from_frame(pd.read_csv(path, dtype={'id': str, 'portfolioId': str}))

        transactions = []
        for line, record in enumerate(records, start=1):
            try:
                transactions.append(Transaction.from_dict(record))
            except ValueError as e:
                raise ValueError(f"{path.name} row {line}: {e}") from e

        self.store.add_many(transactions)
        logger.info(f"Loaded {len(transactions)} transactions from {path}")
        return transactions

    def load_prices(self, prices_path: str) -> Dict[str, Decimal]:
        """
        Load current prices.

        Args:
            prices_path: JSON object {ticker: price} or CSV with ticker,price columns

        Returns:
            Dictionary of ticker -> price
        """
        path = Path(prices_path)
        if path.suffix.lower() == '.json':
            with open(path, 'r') as f:
                raw = json.load(f)
        else:
            df = pd.read_csv(path)
            df.columns = [str(c).strip().lower() for c in df.columns]
            if not {'ticker', 'price'}.issubset(df.columns):
                raise ValueError(f"Price file needs ticker and price columns: {path}")
            df = df.dropna(subset=['ticker', 'price'])
            raw = dict(zip(df['ticker'], df['price']))

        prices = {}
        for ticker, price in raw.items():
            if price is None:
                continue
            prices[str(ticker).strip().upper()] = Decimal(str(price))

        self.prices.update(prices)
        logger.info(f"Loaded {len(prices)} prices from {path}")
        return prices


def transactions_to_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    return pd.DataFrame([t.to_dict() for t in transactions])


def holdings_to_frame(holdings: Iterable[Holding]) -> pd.DataFrame:
    """Holdings as a DataFrame, one row per holding."""
    columns = ['ticker', 'broker', 'quantity', 'avg_price', 'current_price', 'market_value',
               'cost_value', 'unrealized_pnl', 'total_commission', 'total_tax', 'total_cdc']
    return pd.DataFrame([h.get_holding_summary() for h in holdings], columns=columns)


def realized_to_frame(realized: Iterable[RealizedTrade]) -> pd.DataFrame:
    columns = ['id', 'ticker', 'broker', 'date', 'quantity', 'buy_avg', 'sell_price', 'fees', 'profit']
    return pd.DataFrame([r.to_dict() for r in realized], columns=columns)
