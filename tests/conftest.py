"""
pytest configuration for gg_toolkit tests.
"""

import pytest
import sys
import warnings
from pathlib import Path

import numpy as np
import pandas as pd

# Add the parent directory to sys.path to ensure imports work
sys.path.insert(0, str(Path(__file__).parent.parent))


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


@pytest.fixture
def cars():
    """Small fuel-economy style table with numeric and categorical columns."""
    rng = np.random.default_rng(7)
    n = 60
    cls = np.array(["compact", "suv", "midsize"])[np.arange(n) % 3]
    drv = np.array(["f", "4", "r", "f"])[np.arange(n) % 4]
    displ = np.round(rng.uniform(1.6, 6.5, n), 1)
    hwy = np.round(40 - 3.5 * displ + rng.normal(0, 2, n))
    return pd.DataFrame({"displ": displ, "hwy": hwy, "class": cls, "drv": drv, "year": np.where(np.arange(n) < 30, 1999, 2008)})


@pytest.fixture
def quiet():
    """Silence user warnings inside a test body."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        yield
