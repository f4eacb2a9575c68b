"""
Pytest configuration and fixtures for swath engine tests.
"""
import numpy as np
import pytest
from pathlib import Path

# Add project root to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import Config, GridConfig
from data import BeamFlag, Ping, SwathFile, SyntheticSurveyConfig, SyntheticSurveyGenerator
from engine import GridSession


def make_survey(**overrides):
    """Small synthetic survey with two reciprocal lines."""
    params = dict(num_pings=30, num_beams=31)
    params.update(overrides)
    return SyntheticSurveyGenerator(SyntheticSurveyConfig(**params)).generate()


@pytest.fixture
def single_ping_file():
    """One file holding a single north-heading ping with three beams."""
    ping = Ping(
        time_d=1000.0,
        navlon=-70.5,
        navlat=42.3,
        heading=0.0,
        roll=0.0,
        pitch=0.0,
        sonar_depth=2.0,
        altitude=50.0,
        bath=np.array([52.0, 52.0, 52.0]),
        acrosstrack=np.array([-10.0, 0.0, 10.0]),
        alongtrack=np.array([0.0, 0.0, 0.0]),
        beamflag=np.full(3, BeamFlag.OK, dtype=np.int8),
    )
    return SwathFile(name="single", pings=[ping])


@pytest.fixture
def survey():
    """Synthetic survey without bias or noise."""
    return make_survey()


@pytest.fixture
def biased_survey():
    """Synthetic survey with a 1.3 degree roll bias."""
    return make_survey(roll_bias=1.3)


def build_session(files, algorithm="footprint"):
    config = Config(grid=GridConfig(algorithm=algorithm))
    session = GridSession(config)
    session.load_files(files)
    session.setup_grid()
    session.make_grid()
    return session


@pytest.fixture
def session(survey):
    """Gridded session over the unbiased survey."""
    s = build_session(survey)
    yield s
    s.close()


@pytest.fixture
def simple_session(survey):
    """Gridded session using simple binning."""
    s = build_session(survey, algorithm="simple")
    yield s
    s.close()
