"""
Shared pytest fixtures for cost engine tests.
"""

import sys
import os
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

# Pin the compiled region and batch settings for tests
os.environ.setdefault('COSTENGINE_REGION', 'us-east-1')
os.environ.setdefault('COSTENGINE_MAX_BATCH_SIZE', '100')

import pytest
from fastapi.testclient import TestClient

from costengine.core.config import config
from costengine.domain.cost_models import ResourceDescriptor
from costengine.pricing.offer_catalog import SERVICE_CODES, EmbeddedCatalogSource
from costengine.pricing.pricing_client import PricingClient
from costengine.services.cost_estimator import CostEstimator
from costengine.services.recommendations import RecommendationProcessor


@pytest.fixture(scope="session")
def embedded_source():
    """Embedded us-east-1 offer documents."""
    return EmbeddedCatalogSource(config.PRICING_DATA_DIR, "us-east-1")


@pytest.fixture(scope="session")
def raw_documents(embedded_source):
    """Raw bytes of every embedded offer document, keyed by service code."""
    return {code: embedded_source.read(code) for code in SERVICE_CODES}


@pytest.fixture(scope="session")
def pricing_client(embedded_source):
    """Pricing client over the embedded catalog (built once per test session)."""
    client = PricingClient(source=embedded_source)
    client.warm_up()
    return client


@pytest.fixture
def estimator(pricing_client):
    """Cost estimator over the embedded catalog."""
    return CostEstimator(pricing_client=pricing_client)


@pytest.fixture
def processor(pricing_client):
    """Recommendation processor with the default batch limit and lenient validation."""
    return RecommendationProcessor(pricing_client=pricing_client, max_batch_size=100, strict_validation=False)


@pytest.fixture
def client():
    """FastAPI test client."""
    from costengine.main import app
    return TestClient(app)


@pytest.fixture
def make_resource():
    """Factory for AWS us-east-1 resource descriptors."""
    def _make(resource_type, sku="", tags=None, region="us-east-1", provider="aws", **kwargs):
        return ResourceDescriptor(
            provider=provider,
            resource_type=resource_type,
            sku=sku,
            region=region,
            tags=dict(tags or {}),
            **kwargs
        )
    return _make
