from typing import List, Optional, Union

import numpy as np
import pandas as pd

from ..database.abc_db import load_structure
from .particles import PopulationRecord


class ModelSelectionHistory:
    """
    Result of an ABC-SMC model selection run.

    Attributes:
        model_names (list): Names of the candidate models, in model-index order.
        parameter_names (list): Per model, the names of its parameters.
        populations (list): Completed PopulationRecord objects, one per threshold.
        db_path (str or None): SQLite file the run was persisted to.
    """

    def __init__(self, model_names: List[str], parameter_names: List[List[str]], populations: Optional[List[PopulationRecord]] = None, db_path: Optional[str] = None):
        self.model_names = list(model_names)
        self.parameter_names = [list(names) for names in parameter_names]
        self.populations = populations if populations is not None else []
        self.db_path = db_path

    @property
    def n_populations(self) -> int:
        return len(self.populations)

    @property
    def total_nr_simulations(self) -> int:
        return int(sum(p.n_simulations for p in self.populations))

    @property
    def thresholds(self) -> List[float]:
        return [p.threshold for p in self.populations]

    def _model_index(self, model: Union[int, str]) -> int:
        if isinstance(model, str):
            try:
                return self.model_names.index(model)
            except ValueError:
                raise KeyError(f"Unknown model '{model}'. Models: {self.model_names}")
        if not 0 <= model < len(self.model_names):
            raise IndexError(f"Model index {model} out of range")
        return model

    def _population(self, population: int) -> PopulationRecord:
        if self.n_populations == 0:
            raise ValueError("History has no populations")
        return self.populations[population]

    @property
    def model_probabilities(self) -> pd.DataFrame:
        """Model-posterior estimates, one row per population and one column per model."""
        data = [p.model_probabilities for p in self.populations]
        df = pd.DataFrame(data, columns=self.model_names, dtype=np.float64)
        df.index.name = 'population'
        return df

    @property
    def final_probabilities(self) -> pd.Series:
        return self.model_probabilities.iloc[-1]

    def get_model_counts(self, kind: str = 'accepted') -> pd.DataFrame:
        """Per-population accepted or proposed counts ('accepted' | 'proposed')."""
        if kind == 'accepted':
            data = [p.accepted_counts for p in self.populations]
        elif kind == 'proposed':
            data = [p.proposed_counts for p in self.populations]
        else:
            raise ValueError(f"Invalid kind: {kind}. Use 'accepted' or 'proposed'.")
        df = pd.DataFrame(data, columns=self.model_names)
        df.index.name = 'population'
        return df

    def get_acceptance_rates(self) -> pd.DataFrame:
        df = pd.DataFrame([p.acceptance_rates for p in self.populations], columns=self.model_names)
        df.index.name = 'population'
        return df

    def get_particles(self, population: int = -1, model: Union[int, str] = 0) -> pd.DataFrame:
        """
        Accepted particles of one model in one population.
        Args:
            population (int): Population index (negative values count from the end).
            model (int or str): Model index or name.
        Returns:
            pd.DataFrame: One column per parameter plus 'distance' and 'weight'.
        """
        record = self._population(population)
        m = self._model_index(model)
        df = pd.DataFrame(record.params[m], columns=self.parameter_names[m])
        df['distance'] = record.distances[m]
        df['weight'] = record.weights[m]
        return df

    def get_distribution(self, population: int = -1, model: Union[int, str] = 0) -> tuple:
        """Parameter DataFrame and normalised weights of one model, or empty if the model is dead."""
        df = self.get_particles(population, model)
        weights = df['weight'].to_numpy()
        if len(weights) > 0:
            weights = weights / np.sum(weights)
        return df[self.parameter_names[self._model_index(model)]], weights

    def to_dataframe(self) -> pd.DataFrame:
        """Long-format summary: one row per (population, model)."""
        rows = []
        for record in self.populations:
            for m, name in enumerate(self.model_names):
                rows.append({
                    'population': record.index,
                    'threshold': record.threshold,
                    'model': name,
                    'accepted': int(record.accepted_counts[m]),
                    'proposed': int(record.proposed_counts[m]),
                    'probability': float(record.model_probabilities[m]),
                    'emulated': bool(record.emulated[m]) if record.emulated else False,
                })
        return pd.DataFrame(rows)


def load_history(db_path: str) -> ModelSelectionHistory:
    """
    Rebuild a ModelSelectionHistory from a run persisted with ``abc_options['db_path']``.
    Args:
        db_path (str): Path to the SQLite database.
    Returns:
        ModelSelectionHistory: History with one PopulationRecord per stored population.
    """
    _, df_models, df_populations, df_particles, _, _ = load_structure(db_path)
    model_names = df_models['ModelName'].tolist()
    parameter_names = df_models['ParamNames'].tolist()
    n_models = len(model_names)
    populations = []
    for population_id, df_pop in df_populations.groupby('PopulationID', sort=True):
        df_pop = df_pop.sort_values('ModelID')
        df_part = df_particles[df_particles['PopulationID'] == population_id]
        params, weights, distances = [], [], []
        for m in range(n_models):
            df_m = df_part[df_part['ModelID'] == m]
            n_params = len(parameter_names[m])
            params.append(np.array(df_m['Params'].tolist(), dtype=np.float64).reshape(len(df_m), n_params))
            weights.append(df_m['Weight'].to_numpy(dtype=np.float64))
            distances.append(df_m['Distance'].to_numpy(dtype=np.float64))
        populations.append(PopulationRecord(
            index=int(population_id),
            threshold=float(df_pop['Threshold'].iloc[0]),
            accepted_counts=df_pop['NumAccepted'].to_numpy(dtype=int),
            proposed_counts=df_pop['NumProposed'].to_numpy(dtype=int),
            params=params,
            weights=weights,
            distances=distances,
            emulated=[bool(e) for e in df_pop['Emulated']],
            n_simulations=int(df_pop['NumSimulations'].iloc[0]),
        ))
    return ModelSelectionHistory(model_names, parameter_names, populations, db_path=db_path)
