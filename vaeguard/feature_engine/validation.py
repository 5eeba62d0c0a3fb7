"""
Input Validation Module

Enforces the data trust boundary for bars handed over by the retrieval
collaborator. No repair or imputation happens here.
"""

import pandas as pd
from typing import Tuple, List
import logging

from vaeguard.feature_engine.config import FeatureEngineConfig

LOG = logging.getLogger(__name__)


class BarInputValidator:
    """
    Validates bar input before feature computation.

    Rules:
        - Must have date, close and volume columns
        - Dates monotonic increasing
        - No NaN in close or volume
        - Non-positive closes / negative volumes are reported as warnings
          (the feature formulas leave those cells null)
    """

    REQUIRED_COLUMNS = ['date', 'close', 'volume']

    def __init__(self, config: FeatureEngineConfig):
        self.config = config

    def validate_input(self, df: pd.DataFrame) -> Tuple[bool, pd.DataFrame, List[str]]:
        """
        Validate bar DataFrame.

        Args:
            df: Bars (date ascending)

        Returns:
            (is_valid, df, errors)
        """
        errors = []

        missing_cols = [col for col in self.REQUIRED_COLUMNS if col not in df.columns]
        if missing_cols:
            errors.append(f"Missing required columns: {missing_cols}")
            return False, df, errors

        if len(df) == 0:
            # Empty input is valid; it simply yields no windows
            return True, df, errors

        dates = pd.to_datetime(df['date'])
        if not dates.is_monotonic_increasing:
            errors.append("Dates not monotonic increasing")
            return False, df, errors

        for col in ['close', 'volume']:
            values = pd.to_numeric(df[col], errors='coerce')
            nan_count = int(values.isna().sum())
            if nan_count > 0:
                errors.append(f"NaN values in {col}: {nan_count} bars")
                return False, df, errors

        closes = df['close'].to_numpy(dtype=float)
        volumes = df['volume'].to_numpy(dtype=float)

        non_positive = int((closes <= 0).sum())
        if non_positive:
            LOG.warning(f"{non_positive} bars with non-positive close")

        negative_volume = int((volumes < 0).sum())
        if negative_volume:
            LOG.warning(f"{negative_volume} bars with negative volume")

        if self.config.verbose_logging:
            LOG.info(f"✓ Input validation passed: {len(df)} bars")

        return True, df, errors

    def check_sufficient_history(self, df: pd.DataFrame) -> bool:
        """True if at least one full window can be built"""
        return len(df) >= self.config.window.window_size
