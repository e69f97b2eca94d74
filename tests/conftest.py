"""Configuration de test pour pytest avec gestion des chemins.

Ce module configure pytest pour résoudre les imports backend en ajoutant la racine du projet au
sys.path pour les tests, et expose les fixtures de thème partagées.
"""

import os
import sys

import pytest
from structlog.testing import capture_logs

# Ensure project root is on sys.path so that
# imports like `from backend...` resolve.
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from backend.domain.chart_parser import ChartTextParser  # noqa: E402
from tests.fakes import SAMPLE_CHART_TEXT  # noqa: E402


@pytest.fixture(autouse=True)
def captured_logs():
    """Capture les événements structlog; aucune sortie console pendant les tests."""
    with capture_logs() as logs:
        yield logs


@pytest.fixture
def sample_text() -> str:
    """Texte de thème complet (12 palais, né en 1990)."""
    return SAMPLE_CHART_TEXT


@pytest.fixture
def sample_chart(sample_text):
    """Thème parsé à partir de `sample_text`."""
    return ChartTextParser().parse(sample_text)
