"""
Feature Engine Schemas

Defines the bar input record, the fixed feature column order and the
metadata emitted alongside each feature matrix.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Union
import pandas as pd

# Fixed column order of every feature row. Never reorder: the encoder and the
# scaler parameters are indexed by position.
FEATURE_COLUMNS: List[str] = [
    'RSI14',
    'MACD',
    'MACD_Hist',
    'BB_Position',
    'Vol_Ratio',
    'Momentum',
    'SMA_Ratio',
]

BAR_COLUMNS: List[str] = ['date', 'open', 'high', 'low', 'close', 'volume']


@dataclass(frozen=True)
class Bar:
    """Single OHLCV bar. Immutable."""

    date: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_dict(self) -> dict:
        return asdict(self)


BarInput = Union[pd.DataFrame, Sequence[Bar], Sequence[dict]]


def bars_to_frame(bars: BarInput) -> pd.DataFrame:
    """
    Normalise bar input into a DataFrame with BAR_COLUMNS.

    Accepts a DataFrame, a sequence of Bar objects or a sequence of dicts.
    The input is never modified.
    """
    if isinstance(bars, pd.DataFrame):
        return bars.reset_index(drop=True).copy()

    records = [b.to_dict() if isinstance(b, Bar) else dict(b) for b in bars]
    if not records:
        return pd.DataFrame(columns=BAR_COLUMNS)
    return pd.DataFrame.from_records(records)


@dataclass
class FeatureMatrixMetadata:
    """
    Metadata for one feature matrix build.

    Required for auditability and reproducibility.
    """

    processing_timestamp: datetime
    config_version: str
    config_hash: str

    total_bars_input: int
    feature_names: List[str]

    # First row with a real (unfilled) observation, per column
    first_observed_index: Dict[str, Optional[int]] = field(default_factory=dict)

    # Columns that had no observation at all and got a neutral default
    defaulted_columns: List[str] = field(default_factory=list)

    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Serialize to dictionary"""
        return {
            'processing_timestamp': self.processing_timestamp.isoformat(),
            'config_version': self.config_version,
            'config_hash': self.config_hash,
            'total_bars_input': self.total_bars_input,
            'feature_names': self.feature_names,
            'first_observed_index': self.first_observed_index,
            'defaulted_columns': self.defaulted_columns,
            'warnings': self.warnings,
        }
