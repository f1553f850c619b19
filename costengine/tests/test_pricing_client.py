"""
Tests for the pricing client facade.
"""
import asyncio
import threading
from unittest.mock import Mock

import pytest

from costengine.pricing.offer_catalog import SERVICE_CODES, InMemoryCatalogSource, PricingDataError
from costengine.pricing.pricing_client import PricingClient


class TestLookups:
    """Typed accessors over the embedded us-east-1 catalog."""

    def test_ec2(self, pricing_client):
        assert pricing_client.ec2_on_demand_price_per_hour("t3.micro") == pytest.approx((0.0104, True))

    def test_ec2_lookup_is_canonical(self, pricing_client):
        price, found = pricing_client.ec2_on_demand_price_per_hour(" T3.MICRO ", "linux", "SHARED")
        assert found is True
        assert price == pytest.approx(0.0104)

    def test_ec2_not_found(self, pricing_client):
        assert pricing_client.ec2_on_demand_price_per_hour("x9.huge") == (0.0, False)

    def test_ebs(self, pricing_client):
        assert pricing_client.ebs_price_per_gb_month("gp3") == pytest.approx((0.08, True))
        assert pricing_client.ebs_price_per_gb_month("sc1") == pytest.approx((0.015, True))

    def test_nat_gateway(self, pricing_client):
        price, found = pricing_client.nat_gateway_price()
        assert found is True
        assert price.hourly_rate == pytest.approx(0.045)
        assert price.data_processing_rate == pytest.approx(0.045)

    def test_rds(self, pricing_client):
        assert pricing_client.rds_on_demand_price_per_hour("db.t3.medium", "MySQL") == pytest.approx((0.068, True))
        assert pricing_client.rds_on_demand_price_per_hour("db.t3.medium", "postgresql") == pytest.approx((0.072, True))
        assert pricing_client.rds_on_demand_price_per_hour("db.t3.medium", "db2") == (0.0, False)

    def test_s3(self, pricing_client):
        assert pricing_client.s3_price_per_gb_month("STANDARD") == pytest.approx((0.023, True))
        assert pricing_client.s3_price_per_gb_month("glacier_ir") == pytest.approx((0.004, True))

    def test_lambda(self, pricing_client):
        assert pricing_client.lambda_price_per_request() == pytest.approx((0.0000002, True))
        assert pricing_client.lambda_price_per_gb_second("arm64") == pytest.approx((0.0000133334, True))

    def test_dynamodb(self, pricing_client):
        assert pricing_client.dynamodb_storage_price_per_gb_month() == pytest.approx((0.25, True))
        assert pricing_client.dynamodb_on_demand_write_price() == pytest.approx((0.000000625, True))

    def test_eks(self, pricing_client):
        assert pricing_client.eks_cluster_price_per_hour() == pytest.approx((0.10, True))
        assert pricing_client.eks_cluster_price_per_hour(extended_support=True) == pytest.approx((0.60, True))

    def test_load_balancers(self, pricing_client):
        assert pricing_client.load_balancer_price_per_hour("alb") == pytest.approx((0.0225, True))
        assert pricing_client.load_balancer_price_per_capacity_unit("nlb") == pytest.approx((0.006, True))
        assert pricing_client.load_balancer_price_per_hour("clb") == (0.0, False)

    def test_elasticache(self, pricing_client):
        assert pricing_client.elasticache_on_demand_price_per_hour("cache.m5.large", "Redis") == pytest.approx((0.156, True))
        assert pricing_client.elasticache_on_demand_price_per_hour("cache.m5.large", "memcached") == pytest.approx(
            (0.156, True)
        )

    def test_cloudwatch(self, pricing_client):
        tiers, found = pricing_client.cloudwatch_logs_ingestion_tiers()
        assert found is True
        assert tiers[0].rate == pytest.approx(0.5)
        assert pricing_client.cloudwatch_logs_storage_price() == pytest.approx((0.03, True))

    def test_metadata(self, pricing_client):
        assert pricing_client.region == "us-east-1"
        assert pricing_client.currency == "USD"
        assert pricing_client.publication_date.startswith("2024-")


class TestInitialization:
    """Lazy, exactly-once catalog construction."""

    def test_lazy_build(self, embedded_source):
        client = PricingClient(source=embedded_source)
        assert client.is_built() is False
        client.ebs_price_per_gb_month("gp2")
        assert client.is_built() is True

    def test_built_once_under_concurrency(self, embedded_source):
        source = Mock(wraps=embedded_source)
        source.region = "us-east-1"
        client = PricingClient(source=source)
        barrier = threading.Barrier(8)
        results = []

        def lookup():
            barrier.wait()
            results.append(client.ec2_on_demand_price_per_hour("t3.micro"))

        threads = [threading.Thread(target=lookup) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert source.load.call_count == len(SERVICE_CODES)
        assert len(results) == 8
        assert all(result == results[0] for result in results)

    @pytest.mark.asyncio
    async def test_first_use_from_async_tasks(self, embedded_source):
        source = Mock(wraps=embedded_source)
        source.region = "us-east-1"
        client = PricingClient(source=source)

        results = await asyncio.gather(*[
            asyncio.to_thread(client.s3_price_per_gb_month, "STANDARD") for _ in range(5)
        ])

        assert source.load.call_count == len(SERVICE_CODES)
        assert all(result == pytest.approx((0.023, True)) for result in results)

    def test_init_error_is_not_retried(self):
        source = Mock()
        source.region = "us-east-1"
        source.load.side_effect = PricingDataError("AmazonEC2: pricing document is empty")
        client = PricingClient(source=source)

        with pytest.raises(PricingDataError, match="pricing document is empty"):
            client.ec2_on_demand_price_per_hour("t3.micro")
        with pytest.raises(PricingDataError, match="Pricing data unavailable for region us-east-1"):
            client.ec2_on_demand_price_per_hour("t3.micro")

        assert source.load.call_count == 1
        assert client.is_built() is False

    def test_region_mismatch_is_fatal(self, raw_documents):
        client = PricingClient(source=InMemoryCatalogSource("us-west-2", raw_documents))
        with pytest.raises(PricingDataError, match="expected us-west-2"):
            client.warm_up()

    def test_slow_lookup_warning(self, embedded_source, caplog):
        client = PricingClient(source=embedded_source, slow_lookup_threshold_ms=-1)
        client.warm_up()
        with caplog.at_level("WARNING", logger="costengine.pricing.pricing_client"):
            client.ebs_price_per_gb_month("gp2")
        assert any("Slow pricing lookup" in record.getMessage() for record in caplog.records)
