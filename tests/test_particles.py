import threading
import unittest

import numpy as np
import pandas as pd

from uq_abcsmc.abc.history import ModelSelectionHistory
from uq_abcsmc.abc.kernels import UniformKernel
from uq_abcsmc.abc.particles import ModelState, Particle, PopulationRecord, PopulationStore
from uq_abcsmc.abc.priors import RV, Prior


def _models():
    return [
        ModelState(0, 'a', lambda p: p, Prior([RV('uniform', 0, 1)], ['x']), UniformKernel()),
        ModelState(1, 'b', lambda p: p, Prior([RV('uniform', 0, 1), RV('uniform', 0, 1)], ['y', 'z']), UniformKernel()),
    ]


class TestPopulationStore(unittest.TestCase):

    def setUp(self):
        self.store = PopulationStore(_models(), n_particles=4)

    def test_finalize_complete_population(self):
        self.store.start_population(0, 1.0)
        for i in range(4):
            m = i % 2
            self.store.record_proposal(m)
            self.store.record_proposal(m)
            params = np.full(m + 1, 0.1 * i)
            self.assertTrue(self.store.try_accept(Particle(m, params, 0.5, 1.0)))
        # Target met: further acceptances are discarded
        self.assertFalse(self.store.try_accept(Particle(0, np.array([0.9]), 0.1)))
        record = self.store.finalize_population([False, False], n_simulations=8)

        np.testing.assert_array_equal(record.accepted_counts, [2, 2])
        np.testing.assert_array_equal(record.proposed_counts, [4, 4])
        self.assertEqual(record.n_particles, 4)
        np.testing.assert_allclose(record.model_probabilities, [0.5, 0.5])
        np.testing.assert_allclose(record.acceptance_rates, [0.5, 0.5])
        self.assertEqual(record.params[1].shape, (2, 2))
        self.assertEqual(len(record.particles()), 4)
        self.assertIs(self.store.last_population, record)

    def test_distance_above_threshold_is_rejected(self):
        self.store.start_population(0, 1.0)
        with self.assertRaises(ValueError):
            self.store.try_accept(Particle(0, np.array([0.5]), 1.5))
        # Bound is inclusive
        self.assertTrue(self.store.try_accept(Particle(0, np.array([0.5]), 1.0)))

    def test_incomplete_population_cannot_be_finalized(self):
        self.store.start_population(0, 1.0)
        self.store.try_accept(Particle(0, np.array([0.5]), 0.1))
        with self.assertRaises(RuntimeError):
            self.store.finalize_population()

    def test_population_must_be_finalized_before_next(self):
        self.store.start_population(0, 1.0)
        with self.assertRaises(RuntimeError):
            self.store.start_population(1, 0.5)

    def test_concurrent_acceptance_stores_exactly_n_particles(self):
        store = PopulationStore(_models(), n_particles=50)
        store.start_population(0, 1.0)
        results = []
        results_lock = threading.Lock()

        def worker():
            for _ in range(40):
                accepted = store.try_accept(Particle(0, np.array([0.5]), 0.1))
                with results_lock:
                    results.append(accepted)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(sum(results), 50)
        self.assertEqual(store.accepted_total, 50)
        record = store.finalize_population()
        np.testing.assert_array_equal(record.accepted_counts, [50, 0])
        self.assertEqual(record.params[1].shape, (0, 2))


class TestModelSelectionHistory(unittest.TestCase):

    def setUp(self):
        pop0 = PopulationRecord(
            index=0, threshold=2.0,
            accepted_counts=np.array([3, 1]), proposed_counts=np.array([6, 4]),
            params=[np.array([[0.1], [0.2], [0.3]]), np.array([[0.4, 0.5]])],
            weights=[np.ones(3), np.ones(1)],
            distances=[np.array([1.0, 1.5, 0.5]), np.array([1.9])],
            emulated=[False, False], n_simulations=10,
        )
        pop1 = PopulationRecord(
            index=1, threshold=1.0,
            accepted_counts=np.array([4, 0]), proposed_counts=np.array([9, 0]),
            params=[np.array([[0.1], [0.15], [0.2], [0.25]]), np.empty((0, 2))],
            weights=[np.array([1.0, 2.0, 3.0, 2.0]), np.empty(0)],
            distances=[np.array([0.5, 0.6, 0.7, 0.8]), np.empty(0)],
            emulated=[True, False], n_simulations=5,
        )
        self.history = ModelSelectionHistory(['a', 'b'], [['x'], ['y', 'z']], [pop0, pop1])

    def test_summary_properties(self):
        self.assertEqual(self.history.n_populations, 2)
        self.assertEqual(self.history.total_nr_simulations, 15)
        self.assertEqual(self.history.thresholds, [2.0, 1.0])

    def test_model_probabilities(self):
        probs = self.history.model_probabilities
        self.assertEqual(list(probs.columns), ['a', 'b'])
        self.assertEqual(probs.index.name, 'population')
        np.testing.assert_allclose(probs.sum(axis=1), [1.0, 1.0])
        self.assertAlmostEqual(self.history.final_probabilities['a'], 1.0)

    def test_counts_and_rates(self):
        proposed = self.history.get_model_counts('proposed')
        self.assertEqual(proposed.loc[1, 'a'], 9)
        rates = self.history.get_acceptance_rates()
        self.assertAlmostEqual(rates.loc[0, 'b'], 0.25)
        self.assertEqual(rates.loc[1, 'b'], 0.0)
        with self.assertRaises(ValueError):
            self.history.get_model_counts('rejected')

    def test_get_particles_and_distribution(self):
        df = self.history.get_particles(population=0, model='b')
        self.assertEqual(list(df.columns), ['y', 'z', 'distance', 'weight'])
        params, weights = self.history.get_distribution(model='a')
        self.assertEqual(list(params.columns), ['x'])
        np.testing.assert_allclose(weights, [0.125, 0.25, 0.375, 0.25])
        params, weights = self.history.get_distribution(model=1)
        self.assertEqual(len(params), 0)
        with self.assertRaises(KeyError):
            self.history.get_particles(model='c')

    def test_to_dataframe(self):
        df = self.history.to_dataframe()
        self.assertIsInstance(df, pd.DataFrame)
        self.assertEqual(len(df), 4)
        row = df[(df['population'] == 1) & (df['model'] == 'a')].iloc[0]
        self.assertTrue(row['emulated'])
        self.assertEqual(row['accepted'], 4)


if __name__ == '__main__':
    unittest.main()
