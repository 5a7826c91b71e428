from uq_abcsmc import ModelSelectionContext, RV, run_abc_model_selection
from scipy.integrate import solve_ivp
import numpy as np

# Time points of the observations
time = np.linspace(0, 10, 21)
x0 = 1.0

def logistic_model(params):
    r, K = params
    sol = solve_ivp(lambda t, x: r * x * (1 - x / K), (time[0], time[-1]), [x0], t_eval=time)
    return sol.y # shape (1, len(time))

def gompertz_model(params):
    a, K = params
    sol = solve_ivp(lambda t, x: a * x * np.log(K / x), (time[0], time[-1]), [x0], t_eval=time)
    return sol.y

if __name__ == '__main__':
    # Synthetic observed data generated by the logistic model
    rng = np.random.default_rng(0)
    obs_data = logistic_model([0.8, 10.0]) + rng.normal(0, 0.1, size=(1, len(time)))

    models = [
        {'name': 'logistic', 'simulate': logistic_model, 'prior': {'r': RV('uniform', 0, 2), 'K': RV('uniform', 5, 10)}},
        {'name': 'gompertz', 'simulate': gompertz_model, 'prior': {'a': RV('uniform', 0, 2), 'K': RV('uniform', 5, 10)}},
    ]
    abc_options = {
        'n_particles': 200,
        'num_workers': 4,
        'seed': 1,
        'db_path': 'ex1_model_selection.db',
    }

    print("Generate the model selection structure")
    context = ModelSelectionContext(obs_data, models, [20, 15, 10, 5, 3, 2.5, 2, 1.7, 1.5], abc_options=abc_options)
    history = run_abc_model_selection(context)

    print(history.model_probabilities)
    print("Posterior of the logistic model parameters (last population):")
    print(history.get_particles(model='logistic').describe())
