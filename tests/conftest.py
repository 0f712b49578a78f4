# Test configuration

import pytest
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


@pytest.fixture
def registry():
    """Empty table registry"""
    from kqlmock.query.registry import TableRegistry
    return TableRegistry()


@pytest.fixture
def ingestor(registry):
    """Ingestor using the default first-record type policy"""
    from kqlmock.ingest.processor import TableIngestor
    from kqlmock.ingest.table_builder import ColumnTypePolicy
    return TableIngestor(registry, policy=ColumnTypePolicy.FIRST_RECORD)


@pytest.fixture
def client():
    """Test client with the application lifespan running"""
    from fastapi.testclient import TestClient
    from kqlmock.main import create_app

    with TestClient(create_app()) as test_client:
        yield test_client
