"""
Configuration management for the flight delay classification pipeline.
"""

import hashlib
import os
import yaml
from dataclasses import dataclass, asdict, fields, is_dataclass
from typing import Dict, List, Optional


@dataclass
class PathConfig:
    """Configuration for file paths."""

    flights_csv: str = 'data/flights.csv'
    weather_csv: str = 'data/weather.csv'
    output_dir: str = 'output'

    # Delimited-file options shared by both tables
    separator: str = ','
    na_values: List[str] = None

    def __post_init__(self):
        if self.na_values is None:
            self.na_values = ['NA', '']

    @property
    def logs_dir(self) -> str:
        return os.path.join(self.output_dir, 'logs')

    @property
    def plots_dir(self) -> str:
        return os.path.join(self.output_dir, 'plots')

    @property
    def models_dir(self) -> str:
        return os.path.join(self.output_dir, 'models')

    def create_output_dirs(self):
        """Create the output tree (kept out of __post_init__ so loading a config has no side effects)."""
        for path in (self.output_dir, self.logs_dir, self.plots_dir, self.models_dir):
            os.makedirs(path, exist_ok=True)


@dataclass
class TablePolicy:
    """Missing-value and column-pruning policy for one table."""

    # 'drop_row', 'impute_median' or None (no fallback: residual missing values are an error)
    default: Optional[str] = None
    column_policies: Dict[str, str] = None
    drop_columns: List[str] = None

    # Columns missing more than this fraction are deleted (None disables)
    max_missing_fraction: Optional[float] = None
    # Row deletion losing more than this fraction fails the run (None disables)
    max_row_loss: Optional[float] = None

    # Column pruning
    prune_constant: bool = True
    identifier_ratio: Optional[float] = 0.5
    relative_variance_threshold: Optional[float] = 1e-3
    freq_ratio_cut: float = 19.0
    unique_percent_cut: float = 10.0

    def __post_init__(self):
        if self.column_policies is None:
            self.column_policies = {}
        if self.drop_columns is None:
            self.drop_columns = []


@dataclass
class CleaningConfig:
    """Per-table cleaning policies."""

    flights: TablePolicy = None
    weather: TablePolicy = None
    joined: TablePolicy = None

    def __post_init__(self):
        if self.flights is None:
            self.flights = TablePolicy(
                default='drop_row',
                max_row_loss=0.01,
                drop_columns=[
                    'year', 'dep_time', 'arr_time', 'carrier', 'flight', 'tailnum',
                    'origin', 'dest', 'air_time', 'distance', 'time_hour',
                ],
            )
        if self.weather is None:
            self.weather = TablePolicy(
                default='impute_median',
                max_missing_fraction=0.5,
                drop_columns=['year', 'origin', 'time_hour'],
            )
        if self.joined is None:
            # Join misses are counted by the joiner; rows are dropped here without a loss cap
            self.joined = TablePolicy(
                default='drop_row',
                prune_constant=False,
                identifier_ratio=None,
                relative_variance_threshold=None,
                freq_ratio_cut=float('inf'),
            )


@dataclass
class FeatureConfig:
    """Configuration for feature extraction and the target."""

    departure_field: str = 'sched_dep_time'
    arrival_field: str = 'sched_arr_time'
    duration_column: str = 'duration'

    # 'wrap' adds a day to negative durations, 'drop' removes them, 'keep' leaves them
    overnight_policy: str = 'wrap'

    target: str = 'arr_delay'
    positive_label: str = 'Delay'
    negative_label: str = 'Not Delay'
    delay_threshold_minutes: float = 0.0

    join_keys: List[str] = None

    def __post_init__(self):
        if self.join_keys is None:
            self.join_keys = ['month', 'day', 'hour']


@dataclass
class SamplingConfig:
    """Configuration for class balancing and the train/validation split."""

    upsample_ratio: float = 1.0
    train_fraction: float = 0.70


@dataclass
class KNNConfig:
    """Distance-based classifier."""

    # None selects round(sqrt(n_train))
    n_neighbors: Optional[int] = None
    metric: str = 'euclidean'


@dataclass
class ForestConfig:
    """Ensemble-tree classifier."""

    n_estimators: int = 500
    # None uses floor(sqrt(n_features)), the usual classification default
    max_features: Optional[int] = None
    oob_score: bool = True
    n_jobs: Optional[int] = None


@dataclass
class NetworkConfig:
    """Feed-forward network classifier."""

    hidden_units: List[int] = None
    activation: str = 'relu'
    output_activation: str = 'sigmoid'
    loss_function: str = 'binary_crossentropy'
    optimizer: str = 'adam'
    learning_rate: float = 1e-3
    epochs: int = 10
    batch_size: int = 32
    validation_split: float = 0.0
    standardize: bool = True
    verbose: int = 0

    def __post_init__(self):
        if self.hidden_units is None:
            self.hidden_units = [64, 32]


@dataclass
class ModelConfig:
    """Which classifiers run and which one is carried into tuning and explanation."""

    train: List[str] = None
    selected: str = 'forest'
    knn: KNNConfig = None
    forest: ForestConfig = None
    network: NetworkConfig = None
    save_models: bool = False

    def __post_init__(self):
        if self.train is None:
            self.train = ['knn', 'forest', 'network']
        if self.knn is None:
            self.knn = KNNConfig()
        if self.forest is None:
            self.forest = ForestConfig()
        if self.network is None:
            self.network = NetworkConfig()


@dataclass
class TuningConfig:
    """Configuration for the forest grid and the decision-threshold sweep."""

    enabled: bool = True
    max_features_grid: List[int] = None
    n_estimators_grid: List[int] = None
    # 'validation' scores on the validation split, 'oob' on out-of-bag rows
    selection: str = 'validation'

    threshold_start: float = 0.30
    threshold_stop: float = 0.70
    threshold_step: float = 0.01
    tie_tolerance: float = 1e-9

    def __post_init__(self):
        if self.max_features_grid is None:
            self.max_features_grid = [1, 2, 3, 4]
        if self.n_estimators_grid is None:
            self.n_estimators_grid = [500]


@dataclass
class ExplainerConfig:
    """Configuration for local surrogate explanations."""

    enabled: bool = True
    n_observations: int = 4
    num_samples: int = 500
    distance_metric: str = 'euclidean'
    # None selects 0.75 * sqrt(n_features)
    kernel_width: Optional[float] = None
    # None explains with every feature
    num_features: Optional[int] = None
    ridge_alpha: float = 1.0
    tree_attribution: bool = False
    tree_attribution_rows: int = 500


@dataclass
class DebugConfig:
    """Configuration for debugging and development."""

    debug: bool = False
    max_rows_debug: int = 5000
    debug_epochs: int = 2
    debug_n_estimators: int = 50
    debug_num_samples: int = 100


SECTIONS = ['paths', 'cleaning', 'features', 'sampling', 'model', 'tuning', 'explainer', 'debug']


def _update_dataclass(section, values: dict, prefix: str):
    """Recursively apply a YAML mapping onto a dataclass instance."""
    known = {f.name for f in fields(section)}
    for key, value in values.items():
        if key not in known:
            raise ValueError(f"Unknown configuration key: {prefix}.{key}")
        current = getattr(section, key)
        if is_dataclass(current) and isinstance(value, dict):
            _update_dataclass(current, value, f"{prefix}.{key}")
        else:
            setattr(section, key, value)


class Config:
    """Main configuration class that combines all configurations."""

    def __init__(self, config_file: Optional[str] = None):
        self.paths = PathConfig()
        self.cleaning = CleaningConfig()
        self.features = FeatureConfig()
        self.sampling = SamplingConfig()
        self.model = ModelConfig()
        self.tuning = TuningConfig()
        self.explainer = ExplainerConfig()
        self.debug = DebugConfig()
        self.seed = 42

        if config_file:
            self.load_from_yaml(config_file)

        if self.debug.debug:
            self.apply_debug_settings()

    def apply_debug_settings(self):
        """Apply debug-specific settings."""
        self.model.network.epochs = self.debug.debug_epochs
        self.model.forest.n_estimators = self.debug.debug_n_estimators
        self.tuning.n_estimators_grid = [self.debug.debug_n_estimators]
        self.explainer.num_samples = self.debug.debug_num_samples

    def stage_seed(self, stage: str) -> int:
        """Deterministic sub-seed for one stochastic stage."""
        digest = hashlib.sha256(f"{stage}:{self.seed}".encode('utf-8')).hexdigest()
        return int(digest, 16) % (2 ** 32)

    def load_from_yaml(self, config_file: str):
        """Load configuration from YAML file."""
        with open(config_file, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        if not isinstance(config_dict, dict):
            raise ValueError(f"Configuration file must hold a mapping: {config_file}")

        for section_name, section_config in config_dict.items():
            if section_name == 'seed':
                self.seed = int(section_config)
            elif section_name in SECTIONS:
                if not isinstance(section_config or {}, dict):
                    raise ValueError(f"Configuration section '{section_name}' must be a mapping")
                _update_dataclass(getattr(self, section_name), section_config or {}, section_name)
            else:
                raise ValueError(f"Unknown configuration section: {section_name}")

    def to_dict(self) -> dict:
        config_dict = {'seed': self.seed}
        for section_name in SECTIONS:
            config_dict[section_name] = asdict(getattr(self, section_name))
        return config_dict

    def save_to_yaml(self, config_file: str):
        """Save configuration to YAML file."""
        with open(config_file, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, indent=2, sort_keys=False)

    def validate(self, check_paths: bool = True):
        """Validate configuration parameters."""
        errors = []

        if check_paths:
            if not os.path.exists(self.paths.flights_csv):
                errors.append(f"Flights file not found: {self.paths.flights_csv}")
            if not os.path.exists(self.paths.weather_csv):
                errors.append(f"Weather file not found: {self.paths.weather_csv}")

        for table in ('flights', 'weather', 'joined'):
            policy = getattr(self.cleaning, table)
            allowed = (None, 'drop_row', 'impute_median')
            if policy.default not in allowed:
                errors.append(f"cleaning.{table}.default must be one of {allowed}")
            for column, column_policy in policy.column_policies.items():
                if column_policy not in ('drop_row', 'impute_median', 'drop_column'):
                    errors.append(f"cleaning.{table}.column_policies.{column}: unknown policy '{column_policy}'")
            for name in ('max_missing_fraction', 'max_row_loss'):
                value = getattr(policy, name)
                if value is not None and not 0.0 <= value <= 1.0:
                    errors.append(f"cleaning.{table}.{name} must lie in [0, 1]")

        if self.features.overnight_policy not in ('wrap', 'drop', 'keep'):
            errors.append("features.overnight_policy must be 'wrap', 'drop' or 'keep'")
        if self.features.positive_label == self.features.negative_label:
            errors.append("features.positive_label and negative_label must differ")

        if not 0.0 < self.sampling.train_fraction < 1.0:
            errors.append("sampling.train_fraction must lie strictly between 0 and 1")
        if self.sampling.upsample_ratio <= 0:
            errors.append("sampling.upsample_ratio must be positive")

        from .models import MODEL_REGISTRY
        for name in self.model.train:
            if name not in MODEL_REGISTRY:
                errors.append(f"model.train: unknown model '{name}'")
        if self.model.selected not in MODEL_REGISTRY:
            errors.append(f"model.selected: unknown model '{self.model.selected}'")
        if self.model.network.epochs <= 0:
            errors.append("model.network.epochs must be positive")
        if self.model.forest.n_estimators <= 0:
            errors.append("model.forest.n_estimators must be positive")

        if self.tuning.selection not in ('validation', 'oob'):
            errors.append("tuning.selection must be 'validation' or 'oob'")
        if not 0.0 <= self.tuning.threshold_start < self.tuning.threshold_stop <= 1.0:
            errors.append("tuning threshold bounds must satisfy 0 <= start < stop <= 1")
        if self.tuning.threshold_step <= 0:
            errors.append("tuning.threshold_step must be positive")

        if self.explainer.num_samples < 2:
            errors.append("explainer.num_samples must be at least 2")
        if self.explainer.kernel_width is not None and self.explainer.kernel_width <= 0:
            errors.append("explainer.kernel_width must be positive")

        if errors:
            raise ValueError("Configuration validation failed:\n" + "\n".join(errors))

    def __str__(self):
        """String representation of configuration."""
        sections = [f"SEED: {self.seed}", ""]
        for attr_name in SECTIONS:
            sections.append(f"{attr_name.upper()}:")
            for key, value in asdict(getattr(self, attr_name)).items():
                sections.append(f"  {key}: {value}")
            sections.append("")

        return "\n".join(sections)


def create_default_config() -> Config:
    """Create a default configuration."""
    return Config()


def load_config(config_file: str) -> Config:
    """Load configuration from YAML file."""
    return Config(config_file)
