"""
Database utilities for UQ-ABCSMC.
"""

# Import submodules for dot notation access
from . import abc_db

from .abc_db import (
    create_structure,
    clear_structure,
    insert_metadata,
    insert_models,
    insert_population,
    insert_particles,
    insert_emulators,
    load_structure,
)

__all__ = [
    'abc_db',
    'create_structure',
    'clear_structure',
    'insert_metadata',
    'insert_models',
    'insert_population',
    'insert_particles',
    'insert_emulators',
    'load_structure',
]
