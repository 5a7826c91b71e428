import sqlite3
import pandas as pd
import io
import pickle
import numpy as np
import torch

def create_structure(db_path:str):
    """
    Create the ABC-SMC model selection database structure with six tables:
    1. Metadata: Stores information about the run (method, observed data path, scorer, number of particles, summary statistic, distance metric).
    2. Models: Stores the candidate models (ModelID, ModelName, ParamNames).
    3. Populations: Stores the per-model counts of each population (PopulationID, ModelID, Threshold, NumProposed, NumAccepted, Probability, Emulated, NumSimulations).
    4. Particles: Stores the accepted particles (PopulationID, ParticleID, ModelID, Distance, Weight, Params).
    5. Emulators: Stores the GP emulators state (PopulationID, ModelID, GP_Model).
    6. ObsData: Stores the observed data matrix.
    """
    try:
        conn = sqlite3.connect(db_path)
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS Metadata (
                ABC_Method TEXT PRIMARY KEY,
                ObsData_Path TEXT,
                Scorer TEXT,
                NumParticles INTEGER,
                SummaryStatistic TEXT,
                DistanceMetric TEXT,
                EpsilonStrategy TEXT
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS Models (
                ModelID INTEGER PRIMARY KEY,
                ModelName TEXT,
                ParamNames BLOB
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS Populations (
                PopulationID INTEGER,
                ModelID INTEGER,
                Threshold DOUBLE,
                NumProposed INTEGER,
                NumAccepted INTEGER,
                Probability DOUBLE,
                Emulated INTEGER DEFAULT 0,
                NumSimulations INTEGER DEFAULT 0,
                PRIMARY KEY (PopulationID, ModelID)
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS Particles (
                PopulationID INTEGER,
                ParticleID INTEGER,
                ModelID INTEGER,
                Distance DOUBLE,
                Weight DOUBLE,
                Params BLOB,
                PRIMARY KEY (PopulationID, ParticleID)
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS Emulators (
                PopulationID INTEGER,
                ModelID INTEGER,
                GP_Model BLOB,
                PRIMARY KEY (PopulationID, ModelID)
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS ObsData (
                id INTEGER PRIMARY KEY,
                Data BLOB
            )
        """)
        conn.commit()
        conn.close()
    except sqlite3.Error as e:
        raise RuntimeError(f"Error generating tables: {e}")

def clear_structure(db_path:str):
    """
    Drop all tables of an existing ABC-SMC database so a new run does not mix with stored rows.
    Parameters:
    - db_path: Path to the database file.
    """
    try:
        conn = sqlite3.connect(db_path, timeout=30.0)
        cursor = conn.cursor()
        for table in ('Metadata', 'Models', 'Populations', 'Particles', 'Emulators', 'ObsData'):
            cursor.execute(f"DROP TABLE IF EXISTS {table}")
        conn.commit()
        conn.close()
    except sqlite3.Error as e:
        raise RuntimeError(f"Error clearing tables: {e}")

def insert_metadata(db_path:str, metadata:dict, obs_data:np.ndarray = None):
    """
    Insert run metadata into the Metadata table (and the observed data into ObsData).
    Parameters:
    - db_path: Path to the database file.
    - metadata: Dictionary containing the run metadata.
    - obs_data: Observed data matrix (optional).
    """
    try:
        conn = sqlite3.connect(db_path, timeout=30.0)
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO Metadata (ABC_Method, ObsData_Path, Scorer, NumParticles, SummaryStatistic, DistanceMetric, EpsilonStrategy)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (metadata['ABC_Method'],
              metadata.get('ObsData_Path', None),
              metadata['Scorer'],
              int(metadata['NumParticles']),
              metadata.get('SummaryStatistic', 'keep_all'),
              metadata.get('DistanceMetric', 'euclidean'),
              metadata.get('EpsilonStrategy', 'fixed')))
        if obs_data is not None:
            cursor.execute("INSERT OR REPLACE INTO ObsData (id, Data) VALUES (0, ?)",
                           (sqlite3.Binary(pickle.dumps(np.asarray(obs_data))),))
        conn.commit()
        conn.close()
    except sqlite3.Error as e:
        raise RuntimeError(f"Error inserting ABC Metadata: {e}")

def insert_models(db_path:str, model_names:list, parameter_names:list):
    """
    Insert the candidate models into the Models table.
    Parameters:
    - db_path: Path to the database file.
    - model_names: List of model names (index = ModelID).
    - parameter_names: List with the parameter names of each model.
    """
    try:
        conn = sqlite3.connect(db_path)
        cursor = conn.cursor()
        for model_id, (model_name, param_names) in enumerate(zip(model_names, parameter_names)):
            cursor.execute("""
                INSERT OR REPLACE INTO Models (ModelID, ModelName, ParamNames)
                VALUES (?, ?, ?)
            """, (model_id, model_name, sqlite3.Binary(pickle.dumps(list(param_names)))))
        conn.commit()
        conn.close()
    except sqlite3.Error as e:
        raise RuntimeError(f"Error inserting ABC Models: {e}")

def insert_population(db_path:str, population_id:int, threshold:float, proposed_counts, accepted_counts, emulated:list, n_simulations:int):
    """
    Insert the per-model counts of a completed population into the Populations table.
    Parameters:
    - db_path: Path to the database file.
    - population_id: The population index.
    - threshold: Acceptance threshold of the population.
    - proposed_counts: Proposed candidates per model.
    - accepted_counts: Accepted particles per model.
    - emulated: Per model, whether the emulator scored the candidates.
    - n_simulations: Calls to the true simulator during the population.
    """
    total = float(np.sum(accepted_counts))
    try:
        conn = sqlite3.connect(db_path, timeout=30.0)
        cursor = conn.cursor()
        for model_id, (n_proposed, n_accepted) in enumerate(zip(proposed_counts, accepted_counts)):
            cursor.execute("""
                INSERT OR REPLACE INTO Populations (PopulationID, ModelID, Threshold, NumProposed, NumAccepted, Probability, Emulated, NumSimulations)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (int(population_id), model_id, float(threshold), int(n_proposed), int(n_accepted),
                  int(n_accepted) / total, int(bool(emulated[model_id])), int(n_simulations)))
        conn.commit()
        conn.close()
    except sqlite3.Error as e:
        raise RuntimeError(f"Error inserting ABC Population: {e}")

def insert_particles(db_path:str, population_id:int, params:list, weights:list, distances:list):
    """
    Insert the accepted particles of a population into the Particles table.
    Parameters:
    - db_path: Path to the database file.
    - population_id: The population index.
    - params: Per model, array of accepted parameter vectors.
    - weights: Per model, array of importance weights.
    - distances: Per model, array of distances.
    """
    try:
        conn = sqlite3.connect(db_path, timeout=30.0)
        cursor = conn.cursor()
        particle_id = 0
        for model_id in range(len(params)):
            for p, w, d in zip(params[model_id], weights[model_id], distances[model_id]):
                cursor.execute("""
                    INSERT OR REPLACE INTO Particles (PopulationID, ParticleID, ModelID, Distance, Weight, Params)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (int(population_id), particle_id, model_id, float(d), float(w),
                      sqlite3.Binary(pickle.dumps(np.asarray(p, dtype=np.float64)))))
                particle_id += 1
        conn.commit()
        conn.close()
    except sqlite3.Error as e:
        raise RuntimeError(f"Error inserting ABC Particles: {e}")

def insert_emulators(db_path:str, population_id:int, emulators:dict):
    """
    Insert the GP emulators of a population into the Emulators table.
    Parameters:
    - db_path: Path to the database file.
    - population_id: The population index.
    - emulators: Dictionary {model_id: DistanceEmulator}.
    """
    try:
        conn = sqlite3.connect(db_path, timeout=30.0)
        cursor = conn.cursor()
        for model_id, emulator in emulators.items():
            buffer = io.BytesIO()
            torch.save(emulator.state_dict(), buffer)
            cursor.execute("""
                INSERT OR REPLACE INTO Emulators (PopulationID, ModelID, GP_Model)
                VALUES (?, ?, ?)
            """, (int(population_id), int(model_id), sqlite3.Binary(buffer.getvalue())))
        conn.commit()
        conn.close()
    except sqlite3.Error as e:
        raise RuntimeError(f"Error inserting ABC Emulators: {e}")

def load_structure(db_file:str) -> tuple:
    """
    Load the structure of the ABC-SMC database.
    Parameters:
    - db_file: Path to the database file.
    Return:
    - df_metadata: DataFrame containing metadata.
    - df_models: DataFrame containing the models.
    - df_populations: DataFrame containing the per-model population counts.
    - df_particles: DataFrame containing the accepted particles.
    - df_emulators: DataFrame containing the serialized emulators.
    - obs_data: Observed data matrix (or None).
    """
    conn = sqlite3.connect(db_file)
    cursor = conn.cursor()

    cursor.execute('SELECT * FROM Metadata')
    df_metadata = pd.DataFrame(cursor.fetchall(), columns=['ABC_Method', 'ObsData_Path', 'Scorer', 'NumParticles', 'SummaryStatistic', 'DistanceMetric', 'EpsilonStrategy'])

    cursor.execute('SELECT * FROM Models ORDER BY ModelID')
    df_models = pd.DataFrame(cursor.fetchall(), columns=['ModelID', 'ModelName', 'ParamNames'])
    df_models['ParamNames'] = df_models['ParamNames'].apply(pickle.loads)

    cursor.execute('SELECT * FROM Populations ORDER BY PopulationID, ModelID')
    df_populations = pd.DataFrame(cursor.fetchall(), columns=['PopulationID', 'ModelID', 'Threshold', 'NumProposed', 'NumAccepted', 'Probability', 'Emulated', 'NumSimulations'])

    cursor.execute('SELECT * FROM Particles ORDER BY PopulationID, ParticleID')
    df_particles = pd.DataFrame(cursor.fetchall(), columns=['PopulationID', 'ParticleID', 'ModelID', 'Distance', 'Weight', 'Params'])
    df_particles['Params'] = df_particles['Params'].apply(pickle.loads)

    cursor.execute('SELECT * FROM Emulators ORDER BY PopulationID, ModelID')
    df_emulators = pd.DataFrame(cursor.fetchall(), columns=['PopulationID', 'ModelID', 'GP_Model'])
    df_emulators['GP_Model'] = df_emulators['GP_Model'].apply(lambda x: torch.load(io.BytesIO(x), map_location=torch.device('cpu')))

    cursor.execute('SELECT Data FROM ObsData WHERE id = 0')
    row = cursor.fetchone()
    obs_data = pickle.loads(row[0]) if row else None

    conn.close()
    return df_metadata, df_models, df_populations, df_particles, df_emulators, obs_data
