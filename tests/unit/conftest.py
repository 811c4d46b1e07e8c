"""
Shared fixtures for unit tests.

This module provides service instances bound to the in-memory store:
- Level catalog
- Structure evaluator
- Promotion engine
- Commission calculator
"""

import pytest

from affiliate.services.commission_calculator import CommissionCalculator
from affiliate.services.level_catalog import LevelCatalog
from affiliate.services.promotion_engine import PromotionEngine
from affiliate.services.structure_evaluator import StructureEvaluator


@pytest.fixture
def catalog(store):
    return LevelCatalog(store)


@pytest.fixture
def evaluator(store, graph, catalog):
    """
    Create StructureEvaluator sharing graph and catalog.

    Returns:
        StructureEvaluator: Evaluator for testing
    """
    return StructureEvaluator(store, graph=graph, catalog=catalog)


@pytest.fixture
def engine(store, evaluator, catalog):
    return PromotionEngine(store, evaluator=evaluator, catalog=catalog)


@pytest.fixture
def calculator(store, graph, catalog):
    """
    Create CommissionCalculator distributing over three levels.

    Returns:
        CommissionCalculator: Calculator for testing
    """
    return CommissionCalculator(store, graph=graph, catalog=catalog, max_levels=3)
