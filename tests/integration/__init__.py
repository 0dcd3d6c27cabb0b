"""
Integration tests for entityquery.

These tests verify that all components work together correctly,
from the builder through the executor and cache to the store.
"""

import pytest


# Integration test markers
integration = pytest.mark.integration
