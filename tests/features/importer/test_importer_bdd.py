"""BDD tests for session import features."""

import pytest
from pytest_bdd import scenarios

# Load all importer feature scenarios
scenarios(".")

pytestmark = [
    pytest.mark.tier(2),  # Integration tests write session files
    pytest.mark.tra("Importer.Orchestrator.Run"),
]
