"""
End-to-end ABC-SMC model selection runs on closed-form growth models.

The observed data is generated by the logistic model. The best linear fit stays at a distance
of about 6 from it, so the linear model must die once the threshold drops below that.
"""
import numpy as np
import pytest

from uq_abcsmc import ExhaustedBudget, ModelSelectionContext, RV, ShapeMismatch, run_abc_model_selection
from scipy import stats

from uq_abcsmc.abc.kernels import NormalKernel, UniformKernel

from conftest import linear_growth, logistic_growth

SCHEDULE = [20.0, 10.0, 5.0, 3.0, 2.0]


class _FreshDrawKernel(UniformKernel):
    """Uniform kernel that mostly proposes fresh U(0, 1) points, away from every ancestor."""

    def perturb(self, params, rng):
        if rng.uniform() < 0.8:
            return rng.uniform(0.0, 1.0, size=np.shape(params))
        return super().perturb(params, rng)


def _run(observed, models, logger, schedule=SCHEDULE, **abc_options):
    abc_options.setdefault('seed', 42)
    ctx = ModelSelectionContext(observed, models, schedule, abc_options=abc_options, logger=logger)
    return run_abc_model_selection(ctx)


@pytest.fixture
def history(observed, models, logger):
    return _run(observed, models, logger, n_particles=100)


class TestPopulationInvariants:

    def test_one_population_per_threshold(self, history):
        assert history.n_populations == len(SCHEDULE)
        assert history.thresholds == SCHEDULE
        assert [p.index for p in history.populations] == list(range(len(SCHEDULE)))

    def test_exact_population_size(self, history):
        for record in history.populations:
            assert int(np.sum(record.accepted_counts)) == 100
            assert sum(len(d) for d in record.distances) == 100
            assert np.all(record.proposed_counts >= record.accepted_counts)

    def test_distances_within_threshold(self, history):
        for record in history.populations:
            for distances in record.distances:
                assert np.all(distances <= record.threshold)

    def test_weights(self, history):
        for weights in history.populations[0].weights:
            np.testing.assert_array_equal(weights, np.ones(len(weights)))
        for record in history.populations[1:]:
            for weights in record.weights:
                assert np.all(weights > 0.0)
                assert np.all(np.isfinite(weights))

    def test_importance_weights_match_kernel_mixture(self, observed, models, logger):
        models[0]['kernel'] = NormalKernel(scale=[0.3, 1.0])
        models[1]['kernel'] = NormalKernel(scale=[0.2])
        history = _run(observed, models, logger, schedule=[20.0, 10.0, 7.0], n_particles=40)
        priors = [
            lambda x: stats.uniform(0, 3).pdf(x[0]) * stats.uniform(5, 10).pdf(x[1]),
            lambda x: stats.uniform(0, 2).pdf(x[0]),
        ]
        scales = [np.array([0.3, 1.0]), np.array([0.2])]
        checked = 0
        for previous, record in zip(history.populations, history.populations[1:]):
            for m in range(2):
                if record.accepted_counts[m] == 0:
                    continue
                ancestor_weights = previous.weights[m] / np.sum(previous.weights[m])
                for x, weight in zip(record.params[m], record.weights[m]):
                    kernel = np.prod(stats.norm.pdf(x, loc=previous.params[m], scale=scales[m]), axis=1)
                    expected = priors[m](x) / np.sum(ancestor_weights * kernel)
                    assert weight == pytest.approx(expected, rel=1e-9)
                    checked += 1
        assert checked == 80

    def test_model_probabilities_sum_to_one(self, history):
        np.testing.assert_allclose(history.model_probabilities.sum(axis=1), 1.0)

    def test_particles_inside_prior_support(self, history, models):
        for record in history.populations:
            r_k = record.params[0]
            assert np.all((r_k[:, 0] >= 0.0) & (r_k[:, 0] <= 3.0))
            assert np.all((r_k[:, 1] >= 5.0) & (r_k[:, 1] <= 15.0))

    def test_simulation_count(self, history):
        # Direct scoring simulates every in-support candidate exactly once
        for record in history.populations:
            assert record.n_simulations >= record.n_particles
            assert record.n_simulations <= int(np.sum(record.proposed_counts))


class TestModelSelectionOutcome:

    def test_true_model_preferred(self, history):
        final = history.final_probabilities
        assert final['logistic'] > final['linear']
        assert final['logistic'] == pytest.approx(1.0)

    def test_dead_model_is_never_proposed_again(self, history):
        accepted = history.get_model_counts('accepted')['linear'].to_numpy()
        proposed = history.get_model_counts('proposed')['linear'].to_numpy()
        dead = np.flatnonzero(accepted == 0)
        assert len(dead) > 0
        first_dead = dead[0]
        assert np.all(accepted[first_dead:] == 0)
        assert np.all(proposed[first_dead + 1:] == 0)

    def test_acceptance_rate_drops_with_threshold(self, history):
        records = history.populations
        first = records[0].n_particles / np.sum(records[0].proposed_counts)
        last = records[-1].n_particles / np.sum(records[-1].proposed_counts)
        assert first > last

    def test_reference_schedule_recovers_data_generating_model(self, observed, models, logger):
        schedule = [20, 15, 10, 5, 3, 2.5, 2, 1.7, 1.5]
        history = _run(observed, models, logger, schedule=schedule, n_particles=200)
        assert history.n_populations == len(schedule)
        final = history.final_probabilities
        assert final['logistic'] > final['linear']

    def test_average_acceptance_rate_non_increasing(self, observed, models, logger):
        rates = []
        for seed in (1, 2, 3):
            run = _run(observed, models, logger, schedule=[20.0, 10.0, 5.0, 2.0], n_particles=50, seed=seed)
            rates.append(run.get_acceptance_rates()['logistic'].to_numpy())
        mean_rates = np.mean(rates, axis=0)
        assert mean_rates[0] >= mean_rates[-1]

    def test_posterior_concentrates(self, history):
        params, weights = history.get_distribution(model='logistic')
        r_mean = np.sum(weights * params['r'].to_numpy())
        K_mean = np.sum(weights * params['K'].to_numpy())
        assert abs(r_mean - 1.0) < 0.5
        assert abs(K_mean - 10.0) < 1.5


class TestReproducibility:

    def test_same_seed_same_result(self, observed, models, logger):
        first = _run(observed, models, logger, schedule=[20.0, 10.0, 5.0], n_particles=40)
        second = _run(observed, models, logger, schedule=[20.0, 10.0, 5.0], n_particles=40)
        for a, b in zip(first.populations, second.populations):
            np.testing.assert_array_equal(a.accepted_counts, b.accepted_counts)
            np.testing.assert_array_equal(a.proposed_counts, b.proposed_counts)
            for pa, pb in zip(a.params, b.params):
                np.testing.assert_array_equal(pa, pb)

    def test_result_independent_of_num_workers(self, observed, models, logger):
        serial = _run(observed, models, logger, schedule=[20.0, 10.0, 5.0], n_particles=40, num_workers=1)
        threaded = _run(observed, models, logger, schedule=[20.0, 10.0, 5.0], n_particles=40, num_workers=3)
        for a, b in zip(serial.populations, threaded.populations):
            np.testing.assert_array_equal(a.accepted_counts, b.accepted_counts)
            np.testing.assert_array_equal(a.proposed_counts, b.proposed_counts)
            assert a.n_simulations == b.n_simulations
            for m in range(2):
                np.testing.assert_array_equal(a.params[m], b.params[m])
                np.testing.assert_array_equal(a.distances[m], b.distances[m])
                np.testing.assert_allclose(a.weights[m], b.weights[m])


class TestEdgeCases:

    def test_out_of_support_candidates_are_not_simulated(self, logger):
        calls = []

        def simulate(params):
            calls.append(float(params[0]))
            return np.array([[params[0]]])

        models = [{'name': 'unit', 'simulate': simulate, 'prior': [RV('uniform', 0.0, 1.0)], 'kernel': UniformKernel(scale=[10.0])}]
        history = _run(np.array([[0.5]]), models, logger, schedule=[1.0, 1.0], n_particles=50)

        record = history.populations[1]
        assert record.proposed_counts[0] > record.accepted_counts[0]
        # Every in-support candidate is within the threshold, so only accepted ones were simulated
        assert record.n_simulations == record.accepted_counts[0]
        assert all(0.0 <= c <= 1.0 for c in calls)
        assert len(calls) == history.total_nr_simulations

    def test_candidates_unreachable_from_ancestors_are_rejected(self, logger):
        calls = []

        def simulate(params):
            calls.append(float(params[0]))
            return np.array([[params[0]]])

        models = [{'name': 'unit', 'simulate': simulate, 'prior': [RV('uniform', 0.0, 1.0)], 'kernel': _FreshDrawKernel(scale=[0.001])}]
        history = _run(np.array([[0.5]]), models, logger, schedule=[1.0, 1.0], n_particles=5)

        ancestors = history.populations[0].params[0][:, 0]
        record = history.populations[1]
        # Every simulated candidate is within the threshold, so only unreachable ones were turned down
        assert record.n_simulations > record.accepted_counts[0]
        simulated = np.array(calls[-record.n_simulations:])
        unreachable = [x for x in simulated if np.min(np.abs(x - ancestors)) > 0.001]
        assert len(unreachable) == record.n_simulations - record.accepted_counts[0]
        for x in record.params[0][:, 0]:
            assert np.min(np.abs(x - ancestors)) <= 0.001
        assert np.all(np.isfinite(record.weights[0]))

    def test_exhausted_budget(self, observed, models, logger):
        with pytest.raises(ExhaustedBudget) as excinfo:
            _run(observed, models, logger, schedule=[1e-6], n_particles=10, max_attempts_per_population=50)
        assert excinfo.value.population == 0
        assert excinfo.value.attempts == 50
        assert excinfo.value.accepted < 10

    def test_shape_mismatch(self, observed, logger):
        models = [{'name': 'two_species', 'simulate': lambda p: np.vstack([linear_growth(p), linear_growth(p)]), 'prior': [RV('uniform', 0.0, 2.0)]}]
        with pytest.raises(ShapeMismatch) as excinfo:
            _run(observed, models, logger, schedule=[10.0], n_particles=5)
        assert excinfo.value.population == 0
        assert excinfo.value.model_index == 0
        assert excinfo.value.simulated_shape == (2, 11)

    def test_simulator_failure_reports_model(self, observed, logger):
        def broken(params):
            raise FloatingPointError("solver diverged")

        models = [{'name': 'broken', 'simulate': broken, 'prior': [RV('uniform', 0.0, 1.0)]}]
        with pytest.raises(RuntimeError, match="population 0, model 'broken'"):
            _run(observed, models, logger, schedule=[10.0], n_particles=5)

    def test_single_model(self, observed, logger):
        models = [{'name': 'logistic', 'simulate': logistic_growth, 'prior': [RV('uniform', 0.0, 3.0), RV('uniform', 5.0, 10.0)]}]
        history = _run(observed, models, logger, schedule=[10.0, 5.0], n_particles=30, kernel='normal')
        assert list(history.final_probabilities) == [1.0]

    def test_quantile_thresholds(self, observed, models, logger):
        history = _run(observed, models, logger, schedule=[20.0], n_particles=40,
                       epsilon_strategy='quantile', epsilon_alpha=0.5, max_populations=4)
        assert history.n_populations == 4
        thresholds = history.thresholds
        assert thresholds[0] == 20.0
        assert all(b <= a for a, b in zip(thresholds, thresholds[1:]))
        assert thresholds[-1] < 20.0

    def test_summary_and_metric_options(self, observed, models, logger):
        history = _run(observed, models, logger, schedule=[5.0, 2.0], n_particles=30,
                       summary_statistic='moments', distance_metric='manhattan')
        for record in history.populations:
            for distances in record.distances:
                assert np.all(distances <= record.threshold)
