from uq_abcsmc import ModelSelectionContext, RV, run_abc_model_selection, load_history
from uq_abcsmc.database.abc_db import load_structure
import numpy as np

time = np.linspace(0, 10, 11)

def logistic_model(params):
    r, K = params
    return (K / (1 + (K - 1) * np.exp(-r * time)))[None, :]

def linear_model(params):
    s, = params
    return (1 + s * time)[None, :]

if __name__ == '__main__':
    db_path = "ex2_emulated_selection.db"
    obs_data = logistic_model([1.0, 10.0])
    models = [
        {'name': 'logistic', 'simulate': logistic_model, 'prior': {'r': RV('uniform', 0, 3), 'K': RV('uniform', 5, 10)}},
        {'name': 'linear', 'simulate': linear_model, 'prior': {'s': RV('uniform', 0, 2)}, 'kernel': 'normal'},
    ]
    abc_options = {
        'n_particles': 100,
        'scorer': 'emulated',
        'n_design_points': 40,
        'emulator_confidence': 1.0,
        'emulator_verify': True, # emulator used as a pre-filter of the true simulator
        'epsilon_strategy': 'quantile',
        'epsilon_alpha': 0.5,
        'max_populations': 6,
        'min_epsilon': 0.5,
        'seed': 2,
        'db_path': db_path,
    }
    context = ModelSelectionContext(obs_data, models, [20.0], abc_options=abc_options)
    history = run_abc_model_selection(context)
    print(history.to_dataframe())

    # Reload the run from the database
    loaded = load_history(db_path)
    print(f"Thresholds: {loaded.thresholds}")
    print(f"Simulations: {loaded.total_nr_simulations}")
    df_metadata, df_models, df_populations, df_particles, df_emulators, obs_data = load_structure(db_path)
    print(df_populations)
    print(f"Stored emulators: {len(df_emulators)}")
