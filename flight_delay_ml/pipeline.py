"""
End-to-end flight delay classification run.

Stages, in order: load, clean flights, extract features, clean weather,
join, post-join clean, balance, split, train, evaluate, tune forest,
threshold sweep, explain. Each stage runs under its name; any failure is
re-raised as a StageError naming the stage.
"""

import logging
import os
from dataclasses import asdict
from typing import Dict, Optional, Tuple

import pandas as pd

from .cleaning import clean_table
from .config import Config
from .errors import SchemaMismatchError, StageError
from .evaluation import compare_models
from .explain import LocalSurrogateExplainer, explanations_frame, tree_attribution_summary
from .features import extract_features
from .joining import drop_join_keys, join_weather
from .loading import load_flights, load_weather
from .models import Classifier, ForestClassifier, create_classifier
from .sampling import class_counts, overlap_count, stratified_split, upsample_minority
from .schema import feature_columns, require_columns
from .tuning import evaluate_at_threshold, select_threshold, sweep_thresholds, tune_forest
from .utils import Timer, save_dataframe, save_json

logger = logging.getLogger(__name__)


class FlightDelayPipeline:
    """
    Runs every stage of the delay classification workflow for one config.

    Intermediate tables and fitted models are kept on the instance
    (`tables`, `models`) so a run can be inspected afterwards.
    """

    def __init__(self, config: Config, save_outputs: bool = True):
        self.config = config
        self.save_outputs = save_outputs
        self.results: Dict[str, object] = {}
        self.tables: Dict[str, pd.DataFrame] = {}
        self.models: Dict[str, Classifier] = {}

        if save_outputs:
            config.paths.create_output_dirs()

    def _run_stage(self, stage: str, fn, *args, **kwargs):
        with Timer(stage, logger):
            try:
                return fn(*args, **kwargs)
            except StageError:
                raise
            except Exception as e:
                logger.error(f"Stage '{stage}' failed: {e}")
                raise StageError(stage, e) from e

    def _output_path(self, *parts: str) -> str:
        return os.path.join(self.config.paths.output_dir, *parts)

    # ------------------------------------------------------------------ data

    def load(self) -> Tuple[pd.DataFrame, pd.DataFrame]:
        flights = self._run_stage('load_flights', load_flights, self.config)
        weather = self._run_stage('load_weather', load_weather, self.config)
        return flights, weather

    def prepare(self, flights: pd.DataFrame, weather: pd.DataFrame) -> pd.DataFrame:
        """Clean both tables, derive features, join and clean again."""
        cfg = self.config
        keys = cfg.features.join_keys
        flight_protected = keys + [cfg.features.target, cfg.features.arrival_field,
                                   cfg.features.departure_field, 'minute']

        flights_clean, flights_report = self._run_stage(
            'clean_flights', clean_table, flights, cfg.cleaning.flights, 'flights', flight_protected)
        flights_features, feature_counts = self._run_stage(
            'extract_features', extract_features, flights_clean, cfg.features)
        weather_clean, weather_report = self._run_stage(
            'clean_weather', clean_table, weather, cfg.cleaning.weather, 'weather', keys)

        joined, join_report = self._run_stage('join', join_weather, flights_features, weather_clean, keys)
        joined_clean, joined_report = self._run_stage(
            'clean_joined', clean_table, joined, cfg.cleaning.joined, 'joined', keys + [cfg.features.target])
        table = self._run_stage('drop_join_keys', drop_join_keys, joined_clean, keys)
        self._run_stage('check_features', self._check_model_table, table)

        self.tables.update({
            'flights': flights_features,
            'weather': weather_clean,
            'joined': table,
        })
        self.results['cleaning'] = {
            report.table: {
                'rows_in': report.rows_in,
                'rows_out': report.rows_out,
                'dropped_columns': report.dropped_columns,
                'imputed_cells': report.imputed_cells,
            }
            for report in (flights_report, weather_report, joined_report)
        }
        self.results['features'] = feature_counts
        self.results['join'] = join_report.as_dict()
        self.results['feature_columns'] = feature_columns(table, cfg.features.target)
        return table

    def _check_model_table(self, table: pd.DataFrame) -> pd.DataFrame:
        target = self.config.features.target
        require_columns(table, [target, self.config.features.duration_column], 'check_features')
        non_numeric = [c for c in feature_columns(table, target)
                       if not pd.api.types.is_numeric_dtype(table[c])]
        if non_numeric:
            raise SchemaMismatchError('check_features', unexpected=non_numeric)
        if table.empty:
            raise ValueError("No rows left after cleaning and joining")
        return table

    def balance_and_split(self, table: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
        cfg = self.config
        target = cfg.features.target
        before = class_counts(table, target)

        balanced = self._run_stage(
            'balance', upsample_minority, table, target,
            cfg.sampling.upsample_ratio, cfg.stage_seed('balance'))
        train, validation = self._run_stage(
            'split', stratified_split, balanced, target,
            cfg.sampling.train_fraction, cfg.stage_seed('split'))

        overlap = overlap_count(train, validation)
        if overlap:
            logger.warning(f"{overlap:,} of {len(validation):,} validation rows duplicate a training "
                           f"row (upsampling precedes the split); validation metrics are optimistic")

        self.tables.update({'balanced': balanced, 'train': train, 'validation': validation})
        self.results['balance'] = {
            'before': {str(k): int(v) for k, v in before.items()},
            'after': {str(k): int(v) for k, v in class_counts(balanced, target).items()},
        }
        self.results['split'] = {
            'train_rows': len(train),
            'validation_rows': len(validation),
            'train_counts': {str(k): int(v) for k, v in class_counts(train, target).items()},
            'validation_counts': {str(k): int(v) for k, v in class_counts(validation, target).items()},
            'duplicate_overlap': overlap,
        }
        return train, validation

    # ---------------------------------------------------------------- models

    def _xy(self, table: pd.DataFrame):
        target = self.config.features.target
        return table[feature_columns(table, target)], table[target]

    def train_models(self, train: pd.DataFrame) -> Dict[str, Classifier]:
        cfg = self.config
        X_train, y_train = self._xy(train)
        names = list(cfg.model.train)
        if cfg.model.selected not in names:
            names.append(cfg.model.selected)

        for name in names:
            model = create_classifier(name, cfg.model, seed=cfg.stage_seed(f'model:{name}'))
            self.models[name] = self._run_stage(f'train_{name}', model.fit, X_train, y_train)
            if cfg.model.save_models and self.save_outputs:
                suffix = '' if name == 'network' else '.joblib'
                self.models[name].save(os.path.join(cfg.paths.models_dir, f'{name}{suffix}'))

        knn = self.models.get('knn')
        if knn is not None:
            self.results['knn_neighbors'] = knn.n_neighbors_
        forest = self.models.get('forest')
        if forest is not None:
            self.results['forest_oob_score'] = forest.oob_score_
        return self.models

    def evaluate_models(self, validation: pd.DataFrame) -> pd.DataFrame:
        cfg = self.config.features
        X_val, y_val = self._xy(validation)
        metrics = self._run_stage('evaluate', compare_models, self.models, X_val, y_val,
                                  cfg.positive_label, cfg.negative_label)
        self.results['metrics'] = metrics.to_dict(orient='records')
        self.tables['metrics'] = metrics
        return metrics

    def tune(self, train: pd.DataFrame, validation: pd.DataFrame):
        cfg = self.config
        X_train, y_train = self._xy(train)
        X_val, y_val = self._xy(validation)
        search = self._run_stage(
            'tune_forest', tune_forest, X_train, y_train, X_val, y_val,
            cfg.model.forest, cfg.tuning, cfg.stage_seed('tune_forest'))

        self.models['forest_tuned'] = search.best_model
        self.tables['forest_grid'] = search.results
        self.results['forest_search'] = {
            'selection': cfg.tuning.selection,
            'best_params': search.best_params,
            'best_score': search.best_score,
        }
        return search

    def selected_model(self) -> Classifier:
        selected = self.config.model.selected
        if selected == 'forest' and 'forest_tuned' in self.models:
            return self.models['forest_tuned']
        return self.models[selected]

    def sweep(self, model: Classifier, validation: pd.DataFrame):
        cfg = self.config
        X_val, y_val = self._xy(validation)
        positive, negative = cfg.features.positive_label, cfg.features.negative_label

        proba = self._run_stage('predict_proba', model.positive_proba, X_val, positive)
        table = self._run_stage('threshold_sweep', sweep_thresholds, y_val, proba, positive, negative,
                                tuning=cfg.tuning)
        chosen = select_threshold(table, cfg.tuning.tie_tolerance)
        metrics = evaluate_at_threshold(y_val, proba, float(chosen['threshold']), positive, negative)

        self.tables['threshold_sweep'] = table
        self.results['threshold'] = {
            'model': model.name,
            'chosen': float(chosen['threshold']),
            'metrics': metrics.as_dict(),
        }
        logger.info(f"Chosen threshold {chosen['threshold']:.2f} "
                    f"(mean score {chosen['mean_score']:.4f})")
        return table, chosen, metrics

    def explain(self, model: Classifier, train: pd.DataFrame, validation: pd.DataFrame):
        cfg = self.config
        X_train, _ = self._xy(train)
        X_val, _ = self._xy(validation)
        explainer = LocalSurrogateExplainer.from_config(X_train, cfg.explainer, seed=cfg.stage_seed('explain'))
        observations = X_val.head(cfg.explainer.n_observations)

        explanations = self._run_stage('explain', explainer.explain, model, observations)
        self.tables['explanations'] = explanations_frame(explanations)
        self.results['explanations'] = [
            {
                'row_id': int(e.row_id),
                'label': str(e.label),
                'probability': e.probability,
                'score': e.score,
                'top_feature': e.contributions.index[0],
            }
            for e in explanations
        ]

        if cfg.explainer.tree_attribution and isinstance(model, ForestClassifier):
            attribution = self._run_stage(
                'tree_attribution', tree_attribution_summary, model, X_val,
                cfg.features.positive_label, cfg.explainer.tree_attribution_rows,
                cfg.stage_seed('tree_attribution'))
            self.tables['tree_attribution'] = attribution.reset_index().rename(columns={'index': 'feature'})
        return explanations

    # ------------------------------------------------------------------- run

    def run(self, flights: Optional[pd.DataFrame] = None, weather: Optional[pd.DataFrame] = None) -> dict:
        """
        Execute the whole workflow.

        Args:
            flights: In-memory flight records (read from the config path when None)
            weather: In-memory weather records (read from the config path when None)

        Returns:
            Summary dictionary of the run
        """
        cfg = self.config
        logger.info("Starting flight delay pipeline")
        logger.info(f"Configuration:\n{cfg}")

        if flights is None or weather is None:
            loaded_flights, loaded_weather = self.load()
            flights = loaded_flights if flights is None else flights
            weather = loaded_weather if weather is None else weather

        table = self.prepare(flights, weather)
        train, validation = self.balance_and_split(table)

        self.train_models(train)
        self.evaluate_models(validation)

        if cfg.tuning.enabled:
            self.tune(train, validation)

        model = self.selected_model()
        sweep_table, chosen, threshold_metrics = self.sweep(model, validation)

        explanations = []
        if cfg.explainer.enabled:
            explanations = self.explain(model, train, validation)

        if self.save_outputs:
            self._run_stage('save_outputs', self._save_outputs, model, threshold_metrics,
                            float(chosen['threshold']), explanations)

        logger.info("Pipeline completed")
        return self.results

    def _save_outputs(self, model, threshold_metrics, threshold, explanations):
        from . import plots

        cfg = self.config
        cfg.save_to_yaml(self._output_path('config.yaml'))
        for name in ('metrics', 'forest_grid', 'threshold_sweep', 'explanations', 'tree_attribution'):
            if name in self.tables:
                save_dataframe(self.tables[name], self._output_path(f'{name}.csv'))

        labels = [cfg.features.negative_label, cfg.features.positive_label]
        plots.plot_confusion_matrix(
            threshold_metrics.counts, labels,
            os.path.join(cfg.paths.plots_dir, 'confusion_matrix.png'),
            title=f'{model.name} @ threshold {threshold:.2f}')
        plots.plot_threshold_sweep(
            self.tables['threshold_sweep'], threshold,
            os.path.join(cfg.paths.plots_dir, 'threshold_sweep.png'))
        if isinstance(model, ForestClassifier):
            importance = model.feature_importance()
            save_dataframe(importance.reset_index().rename(columns={'index': 'feature'}),
                           self._output_path('feature_importance.csv'))
            plots.plot_feature_importance(importance, os.path.join(cfg.paths.plots_dir, 'feature_importance.png'))
        if explanations:
            plots.plot_explanations(explanations, os.path.join(cfg.paths.plots_dir, 'explanations.png'))

        summary = dict(self.results)
        summary['config'] = {'seed': cfg.seed, 'model': asdict(cfg.model)}
        save_json(summary, self._output_path('run_summary.json'))
