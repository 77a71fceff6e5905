"""
Ledger configuration.

Settings are read from a JSON file, for example ``config/config.json``:

    {
        "combine_brokers": false,
        "broker_filter": null,
        "epsilon": 0.0001,
        "xirr_guess": 0.1,
        "fee_schedule": {"commission_rate": 0.15}
    }
"""

from decimal import Decimal
from typing import Any, Dict, Optional
from dataclasses import dataclass, field, fields
import json
import logging

from .core.fees import FeeSchedule
from .core.ledger import CLOSED_EPSILON, UNKNOWN_BROKER
from .analytics.xirr import DEFAULT_GUESS, MAX_ITERATIONS, TOLERANCE

logger = logging.getLogger(__name__)


@dataclass
class LedgerConfig:
    """Replay, valuation and fee settings."""
    combine_brokers: bool = False
    broker_filter: Optional[str] = None
    epsilon: Decimal = CLOSED_EPSILON
    unknown_broker: str = UNKNOWN_BROKER
    xirr_guess: float = DEFAULT_GUESS
    xirr_max_iterations: int = MAX_ITERATIONS
    xirr_tolerance: float = TOLERANCE
    fee_schedule: FeeSchedule = field(default_factory=FeeSchedule)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LedgerConfig':
        """Build a config from a mapping; unknown keys are logged and ignored."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            kwargs[key] = value

        if isinstance(kwargs.get('fee_schedule'), dict):
            kwargs['fee_schedule'] = FeeSchedule.from_dict(kwargs['fee_schedule'])
        if 'epsilon' in kwargs:
            kwargs['epsilon'] = Decimal(str(kwargs['epsilon']))
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'combine_brokers': self.combine_brokers,
            'broker_filter': self.broker_filter,
            'epsilon': float(self.epsilon),
            'unknown_broker': self.unknown_broker,
            'xirr_guess': self.xirr_guess,
            'xirr_max_iterations': self.xirr_max_iterations,
            'xirr_tolerance': self.xirr_tolerance,
            'fee_schedule': self.fee_schedule.to_dict(),
        }


def load_config(config_path: str) -> LedgerConfig:
    """Load configuration from JSON file."""
    with open(config_path, 'r') as f:
        return LedgerConfig.from_dict(json.load(f))
