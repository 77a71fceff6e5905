"""
Data Components

Loading transactions and prices from CSV / JSON and exporting ledger output.
"""

from .ingestion import DataIngestion, holdings_to_frame, realized_to_frame, transactions_to_frame

__all__ = ['DataIngestion', 'holdings_to_frame', 'realized_to_frame', 'transactions_to_frame']
