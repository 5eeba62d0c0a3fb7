"""
Feature Engine Configuration

Defines indicator periods, window length and null-fill parameters.
All parameters must be explicitly versioned for reproducibility: the encoder
was trained offline on features computed with exactly these values.
"""

from dataclasses import dataclass, field
from typing import Dict
import json
import hashlib


@dataclass
class IndicatorConfig:
    """Indicator periods (must match the training notebook)"""

    # Wilder RSI
    rsi_period: int = 14

    # MACD (standard EMA 2/(n+1))
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9

    # Bollinger Bands (population std-dev)
    bb_period: int = 20
    bb_multiplier: float = 2.0

    # Volume ratio
    volume_sma_period: int = 20

    # Momentum (percent change)
    momentum_period: int = 10

    # Price / SMA ratio
    sma_ratio_period: int = 50


@dataclass
class WindowConfig:
    """Sliding window parameters"""

    window_size: int = 20

    # Feature count per row (fixed column order)
    n_features: int = 7


@dataclass
class FillConfig:
    """Null handling parameters"""

    # Range below which Bollinger position collapses to the midpoint
    range_epsilon: float = 1e-10
    bb_flat_position: float = 0.5

    # SMA_Ratio leading nulls (price at par with its own trend)
    sma_ratio_leading_value: float = 1.0

    # Columns with no observation at all
    unobserved_defaults: Dict[str, float] = field(default_factory=lambda: {
        'RSI14': 50.0,
        'MACD': 0.0,
        'MACD_Hist': 0.0,
        'BB_Position': 0.5,
        'Vol_Ratio': 1.0,
        'Momentum': 0.0,
        'SMA_Ratio': 1.0,
    })


@dataclass
class FeatureEngineConfig:
    """
    Master configuration for Feature Engine.

    All parameters versioned for reproducibility.
    """

    # Configuration version
    config_version: str = "1.0.0"

    indicators: IndicatorConfig = field(default_factory=IndicatorConfig)
    window: WindowConfig = field(default_factory=WindowConfig)
    fill: FillConfig = field(default_factory=FillConfig)

    # Execution
    verbose_logging: bool = False

    def get_config_hash(self) -> str:
        """
        Generate deterministic hash of configuration.

        Used for feature versioning and model/feature compatibility checks.
        """
        config_str = json.dumps(self._to_dict_no_hash(), sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    def _to_dict_no_hash(self) -> dict:
        """Internal method: serialize config without hash (prevents recursion)"""
        return {
            "config_version": self.config_version,
            "indicators": {
                "rsi_period": self.indicators.rsi_period,
                "macd_fast": self.indicators.macd_fast,
                "macd_slow": self.indicators.macd_slow,
                "macd_signal": self.indicators.macd_signal,
                "bb_period": self.indicators.bb_period,
                "bb_multiplier": self.indicators.bb_multiplier,
                "volume_sma_period": self.indicators.volume_sma_period,
                "momentum_period": self.indicators.momentum_period,
                "sma_ratio_period": self.indicators.sma_ratio_period,
            },
            "window": {
                "window_size": self.window.window_size,
                "n_features": self.window.n_features,
            },
            "fill": {
                "range_epsilon": self.fill.range_epsilon,
                "bb_flat_position": self.fill.bb_flat_position,
                "sma_ratio_leading_value": self.fill.sma_ratio_leading_value,
                "unobserved_defaults": dict(self.fill.unobserved_defaults),
            },
        }

    def to_dict(self) -> dict:
        """Serialize configuration to dictionary with hash"""
        d = self._to_dict_no_hash()
        d["config_hash"] = self.get_config_hash()
        return d

    def to_json(self) -> str:
        """Serialize configuration to JSON string"""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, config_dict: dict) -> 'FeatureEngineConfig':
        """Create config from dictionary"""
        return cls(
            config_version=config_dict.get('config_version', '1.0.0'),
            indicators=IndicatorConfig(**config_dict.get('indicators', {})),
            window=WindowConfig(**config_dict.get('window', {})),
            fill=FillConfig(**config_dict.get('fill', {})),
            verbose_logging=config_dict.get('verbose_logging', False),
        )


# Default configuration instance
DEFAULT_CONFIG = FeatureEngineConfig()
