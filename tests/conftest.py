import numpy as np
import pytest

from sparsenlp.models.hs071 import HS071
from sparsenlp.session import ModelSession


@pytest.fixture
def hs071():
    return HS071()


@pytest.fixture
def started_session(hs071):
    """HS071 session advanced to the evaluation phase."""
    session = ModelSession(hs071)
    session.dimensions()
    session.bounds()
    session.starting_point()
    return session


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
