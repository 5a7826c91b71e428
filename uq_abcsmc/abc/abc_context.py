import os
import sys
import logging
from typing import Union, Optional, Dict, List
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pandas as pd

# UQ ABCSMC imports
from ..errors import ConfigurationError, ExhaustedBudget, PriorSupportViolation
from ..utils.distances import get_distance_metric
from ..utils.sumstats import get_summary_statistic
from ..database.abc_db import clear_structure, create_structure, insert_metadata, insert_models, insert_population, insert_particles, insert_emulators
from .history import ModelSelectionHistory
from .kernels import get_kernel
from .particles import ModelState, Particle, PopulationRecord, PopulationStore
from .priors import as_prior
from .scorers import DirectScorer, EmulatedScorer, Score, TrajectoryScorer, model_evaluation_error


class ModelSelectionContext:
    """
    Context for Approximate Bayesian Computation (ABC-SMC) model selection.

    This class encapsulates the observed data, the competing models and the options of an
    ABC-SMC run. All configuration is validated at construction, before any population runs.

    Attributes:
        obsData (str or np.ndarray): Path to observed data CSV file or matrix (n_trajectories x n_timepoints).
        models (list): Candidate models. Each entry is a dictionary with the keys 'simulate'
            (callable params -> trajectory matrix), 'prior' (Prior, list or dict of univariate
            distributions) and optionally 'name', 'parameter_names' and 'kernel'.
        threshold_schedule (list): Non-increasing sequence of positive acceptance thresholds.
        abc_options (dict): Options for the run (population size, scorer, emulation, parallelism, ...).
        obsData_columns (list or dict): CSV columns holding one trajectory each (CSV input only).
        logger (logging.Logger): Logger instance for logging messages during the run.
    """

    def __init__(
        self,
        obsData: Union[str, np.ndarray],
        models: List[dict],
        threshold_schedule: List[float],
        abc_options: Optional[dict] = None,
        obsData_columns: Optional[Union[list, dict]] = None,
        logger: Optional[logging.Logger] = None
    ):
        """Initialize ModelSelectionContext with comprehensive validation and setup."""
        self.models_config = models
        self.threshold_schedule = [float(t) for t in threshold_schedule] if threshold_schedule is not None else []
        self.abc_options = abc_options if abc_options is not None else {}
        abc_options = self.abc_options

        # Setup logger
        if logger is None:
            self.logger = logging.getLogger(__name__)
            self.logger.setLevel(logging.INFO)
            if not self.logger.handlers:
                console_handler = logging.StreamHandler(sys.stdout)
                console_handler.setLevel(logging.INFO)
                formatter = logging.Formatter(
                    '%(asctime)s - %(levelname)s - %(message)s',
                    datefmt='%Y-%m-%d %H:%M:%S'
                )
                console_handler.setFormatter(formatter)
                self.logger.addHandler(console_handler)
        else:
            self.logger = logger

        # Load and validate observed data
        self.obsData_path = None
        if isinstance(obsData, str):
            self.obsData_path = obsData
            self.obs_data = self._load_observed_csv(obsData, obsData_columns)
        else:
            self.obs_data = np.atleast_2d(np.asarray(obsData, dtype=np.float64))

        # ABC-SMC configuration
        self.n_particles = abc_options.get("n_particles", 100)
        self.epsilon_strategy = abc_options.get("epsilon_strategy", "fixed")  # "fixed" or "quantile"
        self.epsilon_alpha = abc_options.get("epsilon_alpha", 0.5)
        self.max_populations = abc_options.get("max_populations", 10)
        self.min_epsilon = abc_options.get("min_epsilon", 0.0)
        self.max_attempts_per_population = abc_options.get("max_attempts_per_population", None)

        # Distance configuration
        self.summary_statistic = abc_options.get("summary_statistic", "keep_all")
        self.distance_metric = abc_options.get("distance_metric", "euclidean")
        self.kernel = abc_options.get("kernel", "uniform")

        # Scorer configuration
        self.scorer_type = abc_options.get("scorer", "direct")  # "direct" or "emulated"
        self.n_design_points = abc_options.get("n_design_points", 50)
        self.emulator_confidence = abc_options.get("emulator_confidence", 1.0)
        self.emulator_verify = abc_options.get("emulator_verify", False)

        # Parallelization and reproducibility
        self.num_workers = abc_options.get("num_workers", 1)
        self.batch_size = abc_options.get("batch_size", 32)
        self.seed = abc_options.get("seed", None)
        self.db_path = abc_options.get("db_path", None)

        self.model_names = abc_options.get("model_names", None)

        # Validate configuration
        self._validate_configuration()
        if self.max_attempts_per_population is None:
            self.max_attempts_per_population = 1000 * self.n_particles

        self.logger.info(f"🔧 ModelSelectionContext initialized for ABC-SMC model selection")
        self.logger.info(f"🧬 Models: {self.model_names}")
        self.logger.info(f"📊 Observed data: {self.obs_data.shape[0]} trajectories x {self.obs_data.shape[1]} time points")
        self.logger.info(f"⚙️ Scorer: {self.scorer_type} with {self.num_workers} workers")

    def _load_observed_csv(self, csv_path: str, obsData_columns: Optional[Union[list, dict]]) -> np.ndarray:
        """Read the observed trajectories from a CSV file, one column per trajectory."""
        try:
            df_obsData = pd.read_csv(csv_path)
        except Exception as e:
            self.logger.error(f"Error reading observed data from {csv_path}: {e}")
            raise
        if obsData_columns is None:
            raise ConfigurationError("obsData_columns must be provided when obsData is a CSV path")
        columns = list(obsData_columns.values()) if isinstance(obsData_columns, dict) else list(obsData_columns)
        for column_name in columns:
            if column_name not in df_obsData.columns:
                raise ConfigurationError(f"Column '{column_name}' not found in observed data.")
        self.logger.debug(f"Successfully loaded observed data from {csv_path}")
        return np.array([df_obsData[column_name].to_numpy(dtype=np.float64) for column_name in columns])

    def _validate_configuration(self):
        """Validate the configuration parameters."""
        if self.obs_data.ndim != 2 or self.obs_data.size == 0:
            raise ConfigurationError(f"Observed data must be a non-empty matrix, got shape {self.obs_data.shape}")
        if not np.all(np.isfinite(self.obs_data)):
            raise ConfigurationError("Observed data contains non-finite values")

        if not self.models_config:
            raise ConfigurationError("models cannot be empty")
        for model_index, model in enumerate(self.models_config):
            if not isinstance(model, dict):
                raise ConfigurationError(f"Model {model_index} must be a dictionary, got {type(model).__name__}")
            if not callable(model.get('simulate')):
                raise ConfigurationError(f"Model {model_index} has no callable 'simulate'")
            if model.get('prior') is None:
                raise ConfigurationError(f"Model {model_index} has no 'prior'")
            as_prior(model['prior'], model.get('parameter_names'))

        if self.model_names is None:
            self.model_names = [model.get('name', f"model_{i}") for i, model in enumerate(self.models_config)]
        if len(self.model_names) != len(self.models_config):
            raise ConfigurationError(f"{len(self.model_names)} model names given for {len(self.models_config)} models")
        if len(set(self.model_names)) != len(self.model_names):
            raise ConfigurationError(f"Model names must be unique: {self.model_names}")

        if not _is_positive_int(self.n_particles):
            raise ConfigurationError(f"n_particles must be a positive integer, got {self.n_particles}")

        if len(self.threshold_schedule) == 0:
            raise ConfigurationError("threshold_schedule cannot be empty")
        schedule = np.asarray(self.threshold_schedule)
        if not np.all(np.isfinite(schedule)) or np.any(schedule <= 0.0):
            raise ConfigurationError(f"Thresholds must be positive and finite: {self.threshold_schedule}")
        if np.any(np.diff(schedule) > 0.0):
            raise ConfigurationError(f"threshold_schedule must be non-increasing: {self.threshold_schedule}")

        if self.epsilon_strategy not in ("fixed", "quantile"):
            raise ConfigurationError(f"Epsilon strategy '{self.epsilon_strategy}' not supported. Use 'fixed' or 'quantile'.")
        if self.epsilon_strategy == "quantile":
            if not 0.0 < self.epsilon_alpha < 1.0:
                raise ConfigurationError(f"epsilon_alpha must be in (0, 1), got {self.epsilon_alpha}")
            if not _is_positive_int(self.max_populations):
                raise ConfigurationError(f"max_populations must be a positive integer, got {self.max_populations}")
            if len(self.threshold_schedule) > 1:
                self.logger.warning("Quantile epsilon strategy only uses the first threshold of the schedule")

        if self.max_attempts_per_population is not None and not _is_positive_int(self.max_attempts_per_population):
            raise ConfigurationError(f"max_attempts_per_population must be a positive integer, got {self.max_attempts_per_population}")

        # Resolve names early so unknown ones fail before any population runs
        get_summary_statistic(self.summary_statistic)
        get_distance_metric(self.distance_metric)
        get_kernel(self.kernel)
        for model in self.models_config:
            if 'kernel' in model:
                get_kernel(model['kernel'])

        if self.scorer_type not in ("direct", "emulated"):
            raise ConfigurationError(f"Scorer '{self.scorer_type}' is not supported. Use 'direct' or 'emulated'.")
        if not _is_positive_int(self.n_design_points):
            raise ConfigurationError(f"n_design_points must be a positive integer, got {self.n_design_points}")
        if self.emulator_confidence < 0.0:
            raise ConfigurationError(f"emulator_confidence must be non-negative, got {self.emulator_confidence}")
        if not _is_positive_int(self.num_workers):
            raise ConfigurationError(f"num_workers must be a positive integer, got {self.num_workers}")
        if not _is_positive_int(self.batch_size):
            raise ConfigurationError(f"batch_size must be a positive integer, got {self.batch_size}")

    def setup_models(self) -> List[ModelState]:
        """Build the indexed per-model state (prior, proposal kernel, simulator)."""
        models = []
        for model_index, model in enumerate(self.models_config):
            prior = as_prior(model['prior'], model.get('parameter_names'))
            models.append(ModelState(
                index=model_index,
                name=self.model_names[model_index],
                simulate=model['simulate'],
                prior=prior,
                kernel=get_kernel(model.get('kernel', self.kernel)),
            ))
        return models

    def setup_scorer(self) -> TrajectoryScorer:
        """Setup the trajectory scorer (direct simulation or GP emulation)."""
        if self.scorer_type == "emulated":
            self.logger.info(f"Using emulated scorer with {self.n_design_points} design points per model (confidence={self.emulator_confidence}, verify={self.emulator_verify})")
            return EmulatedScorer(
                self.obs_data, self.summary_statistic, self.distance_metric, self.logger,
                n_design_points=self.n_design_points,
                confidence=self.emulator_confidence,
                verify=self.emulator_verify,
            )
        return DirectScorer(self.obs_data, self.summary_statistic, self.distance_metric, self.logger)

    def setup_database(self, models: List[ModelState]):
        """Create the database structure and store metadata and models. An existing database is replaced."""
        if os.path.exists(self.db_path):
            self.logger.warning(f"⚠️ Database {self.db_path} already exists; replacing its contents with the new run")
            clear_structure(self.db_path)
        create_structure(self.db_path)
        insert_metadata(self.db_path, {
            "ABC_Method": "ABC-SMC model selection",
            "ObsData_Path": self.obsData_path,
            "Scorer": self.scorer_type,
            "NumParticles": self.n_particles,
            "SummaryStatistic": _label(self.summary_statistic),
            "DistanceMetric": _label(self.distance_metric),
            "EpsilonStrategy": self.epsilon_strategy,
        }, self.obs_data)
        insert_models(self.db_path, self.model_names, [model.prior.parameter_names for model in models])
        self.logger.info(f"💾 Created database: {self.db_path}")

    def save_population(self, record: PopulationRecord, scorer: TrajectoryScorer):
        """Persist a completed population."""
        try:
            insert_population(self.db_path, record.index, record.threshold, record.proposed_counts, record.accepted_counts, record.emulated, record.n_simulations)
            insert_particles(self.db_path, record.index, record.params, record.weights, record.distances)
            if scorer.uses_emulator and scorer.emulators:
                insert_emulators(self.db_path, record.index, scorer.emulators)
        except Exception as e:
            self.logger.error(f"Error saving population {record.index} to database: {e}")
            raise

    def first_threshold(self) -> float:
        return self.threshold_schedule[0]

    def next_threshold(self, record: PopulationRecord) -> Optional[float]:
        """Threshold of the population after ``record``, or None when the schedule is finished."""
        next_index = record.index + 1
        if self.epsilon_strategy == "fixed":
            return self.threshold_schedule[next_index] if next_index < len(self.threshold_schedule) else None
        if next_index >= self.max_populations or record.threshold <= self.min_epsilon:
            return None
        distances = np.concatenate([d for d in record.distances if len(d) > 0])
        threshold = max(min(record.threshold, float(np.quantile(distances, self.epsilon_alpha))), self.min_epsilon)
        if threshold <= 0.0:
            return None
        return threshold


def _is_positive_int(value) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool) and value > 0


def _label(selector) -> str:
    return selector if isinstance(selector, str) else getattr(selector, '__name__', repr(selector))


def _fit_proposal(models: List[ModelState], previous: Optional[PopulationRecord]) -> tuple:
    """
    Model-selection probabilities and proposal sampler for the next population.

    Population 0 samples models uniformly and parameters from the priors. Later populations sample
    models proportionally to their previous accepted counts (dead models stay dead) and perturb an
    ancestor drawn with probability proportional to its weight.
    """
    n_models = len(models)
    if previous is None:
        model_probs = np.full(n_models, 1.0 / n_models)

        def propose(model_index, rng):
            return models[model_index].prior.sample(rng)

        return model_probs, propose, {}

    model_probs = previous.accepted_counts / float(previous.n_particles)
    ancestor_weights = {}
    for model in models:
        if previous.accepted_counts[model.index] > 0:
            ancestor_weights[model.index] = previous.normalized_weights(model.index)
            model.kernel.fit(previous.params[model.index], previous.weights[model.index], model.prior)

    def propose(model_index, rng):
        weights = ancestor_weights[model_index]
        ancestor = rng.choice(len(weights), p=weights)
        return models[model_index].kernel.perturb(previous.params[model_index][ancestor], rng)

    return model_probs, propose, ancestor_weights


def _importance_weight(model: ModelState, previous: Optional[PopulationRecord], ancestor_weights: Dict[int, np.ndarray], params: np.ndarray, prior_density: float) -> Optional[float]:
    """Prior density over the weighted kernel mixture of the ancestors; None if unreachable."""
    if previous is None:
        return 1.0
    kernel_densities = model.kernel.density(previous.params[model.index], params)
    denominator = float(np.sum(ancestor_weights[model.index] * kernel_densities))
    if not np.isfinite(denominator) or denominator <= 0.0:
        return None
    return prior_density / denominator


def _score_candidate(scorer: TrajectoryScorer, model: ModelState, params: np.ndarray, threshold: float, population: int) -> Score:
    try:
        return scorer.score(model, params, threshold)
    except Exception as e:
        raise model_evaluation_error(e, population, model) from e


def run_population(context: ModelSelectionContext, store: PopulationStore, models: List[ModelState], scorer: TrajectoryScorer, population: int, threshold: float, rng: np.random.Generator, executor: Optional[ThreadPoolExecutor] = None) -> PopulationRecord:
    """
    Sample one population of exactly ``n_particles`` accepted particles.

    Candidates are drawn in batches in the calling thread, so the random stream does not depend
    on the number of workers; scoring runs in ``executor`` when given. Results are consumed in
    submission order and results arriving after the target is met are discarded.

    Raises:
        ExhaustedBudget: If ``max_attempts_per_population`` candidates do not fill the population.
        ShapeMismatch: If simulated and observed summaries have different shapes.
    """
    logger = context.logger
    previous = store.last_population
    model_probs, propose, ancestor_weights = _fit_proposal(models, previous)
    alive = [bool(p > 0.0) for p in model_probs]

    store.start_population(population, threshold)
    scorer.prepare_population(population, models, alive, propose, rng, executor.map if executor is not None else map)
    n_simulations = scorer.design_simulations

    attempts = 0
    while not store.is_full:
        if attempts >= context.max_attempts_per_population:
            raise ExhaustedBudget(population, threshold, store.accepted_total, context.n_particles, attempts)
        n_batch = min(context.batch_size, context.max_attempts_per_population - attempts)
        candidates = []
        for _ in range(n_batch):
            model_index = int(rng.choice(len(models), p=model_probs))
            params = propose(model_index, rng)
            try:
                prior_density = models[model_index].prior.check_support(params, model_index)
            except PriorSupportViolation:
                prior_density = 0.0
            candidates.append((model_index, params, prior_density))
        attempts += n_batch

        futures = None
        if executor is not None:
            futures = [
                executor.submit(_score_candidate, scorer, models[m], params, threshold, population) if density > 0.0 else None
                for m, params, density in candidates
            ]

        for i, (model_index, params, prior_density) in enumerate(candidates):
            if store.is_full:
                break
            store.record_proposal(model_index)
            if not prior_density > 0.0:
                logger.debug(f"Population {population}: candidate {params} outside prior support of model {model_index}")
                continue
            if futures is not None:
                score = futures[i].result()
            else:
                score = _score_candidate(scorer, models[model_index], params, threshold, population)
            n_simulations += score.n_simulations
            if not score.accepted:
                continue
            weight = _importance_weight(models[model_index], previous, ancestor_weights, params, prior_density)
            if weight is None:
                logger.debug(f"Population {population}: candidate {params} unreachable from ancestors of model {model_index}")
                continue
            store.try_accept(Particle(model_index, params, score.distance, weight))

    record = store.finalize_population(scorer.emulated_models(len(models)), n_simulations)
    for model in models:
        if alive[model.index] and record.accepted_counts[model.index] == 0:
            logger.warning(f"⚠️ Model '{model.name}' received no particles in population {population} and is dropped")
    return record


def run_abc_model_selection(context: ModelSelectionContext) -> ModelSelectionHistory:
    """
    Execute the complete ABC-SMC model selection process.

    This function orchestrates the population loop using the ModelSelectionContext: model and
    scorer setup, optional database persistence, and one population per threshold.

    Args:
        context (ModelSelectionContext): The context containing all configuration

    Returns:
        ModelSelectionHistory: Per-population model probabilities and particle sets
    """
    logger = context.logger

    try:
        logger.info("🚀 Starting ABC-SMC model selection")
        logger.info(f"👥 Particles per population: {context.n_particles}")
        if context.epsilon_strategy == "fixed":
            logger.info(f"🎯 Threshold schedule: {context.threshold_schedule}")
        else:
            logger.info(f"🎯 Quantile thresholds: initial {context.first_threshold()}, alpha {context.epsilon_alpha}, max populations {context.max_populations}")

        models = context.setup_models()
        scorer = context.setup_scorer()
        store = PopulationStore(models, context.n_particles)
        history = ModelSelectionHistory(context.model_names, [model.prior.parameter_names for model in models], store.populations, db_path=context.db_path)
        rng = np.random.default_rng(context.seed)

        if context.db_path is not None:
            context.setup_database(models)

        executor = ThreadPoolExecutor(max_workers=context.num_workers) if context.num_workers > 1 else None
        try:
            population = 0
            threshold = context.first_threshold()
            while threshold is not None:
                logger.info(f"{'='*60}")
                logger.info(f"🔄 Population {population} - threshold {threshold}")
                record = run_population(context, store, models, scorer, population, threshold, rng, executor)
                probabilities = ", ".join(f"{name}: {p:.3f}" for name, p in zip(context.model_names, record.model_probabilities))
                logger.info(f"✅ Population {population} complete - acceptance rate {record.n_particles / max(1, int(np.sum(record.proposed_counts))):.2%}, simulations {record.n_simulations}")
                logger.info(f"📈 Model probabilities: {probabilities}")
                if context.db_path is not None:
                    context.save_population(record, scorer)
                threshold = context.next_threshold(record)
                population += 1
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        logger.info("✅ ABC-SMC model selection completed successfully!")
        logger.info(f"📈 Final statistics:")
        logger.info(f"   - Populations: {history.n_populations}")
        logger.info(f"   - Total simulations: {history.total_nr_simulations}")
        logger.info(f"   - Final probabilities: {dict(history.final_probabilities)}")
        return history

    except Exception as e:
        logger.error(f"❌ Error in ABC-SMC model selection: {e}")
        raise
