"""
Tests for batch recommendation processing.
"""
import logging
from unittest.mock import Mock, patch

import pytest

from costengine.domain.recommendation_models import (
    BatchStats,
    Recommendation,
    RecommendationFilter,
    RecommendedResource,
)
from costengine.services.recommendations import (
    MOD_GENERATION_UPGRADE,
    MOD_GRAVITON_MIGRATION,
    MOD_VOLUME_TYPE_UPGRADE,
    BatchSizeError,
    RecommendationProcessor,
    StrictValidationError,
    correlation_id,
    parse_instance_type,
    parse_rds_instance_type,
)


def _by_type(result):
    return {rec.modification_type: rec for rec in result.recommendations}


class TestParsing:

    def test_instance_type(self):
        assert parse_instance_type("t2.medium") == ("t2", "medium")
        assert parse_instance_type("m5.24xlarge") == ("m5", "24xlarge")
        assert parse_instance_type("bogus") == ("", "")
        assert parse_instance_type("") == ("", "")

    def test_rds_instance_type(self):
        assert parse_rds_instance_type("db.t3.medium") == ("db.t3", "medium")
        assert parse_rds_instance_type("t3.medium") == ("", "")
        assert parse_rds_instance_type("db.") == ("", "")


class TestCorrelation:

    def test_priority(self, make_resource):
        resource = make_resource("ec2", "t3.micro", tags={"resource_id": "tag-id", "name": "tag-name"},
                                 id="explicit-id", arn="arn:aws:ec2:us-east-1:123:instance/i-1", name="web")
        assert correlation_id(resource) == "explicit-id"
        resource.id = ""
        assert correlation_id(resource) == "arn:aws:ec2:us-east-1:123:instance/i-1"
        resource.arn = ""
        assert correlation_id(resource) == "tag-id"
        resource.tags.pop("resource_id")
        assert correlation_id(resource) == "web"
        resource.name = ""
        assert correlation_id(resource) == "tag-name"
        resource.tags.clear()
        assert correlation_id(resource) == ""

    def test_recommendation_carries_resource_identity(self, processor, make_resource):
        result = processor.process([make_resource("ec2", "t2.micro", id="i-123", name="web")])
        rec = result.recommendations[0]
        assert rec.resource.id == "i-123"
        assert rec.resource.name == "web"


class TestEC2Rules:

    def test_t2_generation_upgrade(self, processor, make_resource):
        result = processor.process([make_resource("ec2", "t2.micro")])
        recs = _by_type(result)
        assert set(recs) == {MOD_GENERATION_UPGRADE}
        rec = recs[MOD_GENERATION_UPGRADE]
        assert rec.recommended_config == {"instance_type": "t3.micro"}
        assert rec.priority == "MEDIUM"
        assert rec.confidence_score == pytest.approx(0.9)
        assert rec.impact.current_cost == pytest.approx(0.0116 * 730)
        assert rec.impact.projected_cost == pytest.approx(7.592)
        assert rec.category == "COST"
        assert rec.action_type == "MODIFY"

    def test_t3_generation_and_graviton(self, processor, make_resource):
        recs = _by_type(processor.process([make_resource("aws:ec2/instance:Instance", "t3.micro")]))
        assert recs[MOD_GENERATION_UPGRADE].recommended_config["instance_type"] == "t3a.micro"
        graviton = recs[MOD_GRAVITON_MIGRATION]
        assert graviton.recommended_config == {"instance_type": "t4g.micro", "architecture": "arm64"}
        assert graviton.priority == "LOW"
        assert graviton.confidence_score == pytest.approx(0.7)
        assert graviton.impact.estimated_savings == pytest.approx((0.0104 - 0.0084) * 730)

    def test_equal_price_upgrade_is_recommended(self, processor, make_resource):
        recs = _by_type(processor.process([make_resource("ec2", "m5.large")]))
        upgrade = recs[MOD_GENERATION_UPGRADE]
        assert upgrade.recommended_config["instance_type"] == "m6i.large"
        assert upgrade.impact.estimated_savings == pytest.approx(0.0)
        assert recs[MOD_GRAVITON_MIGRATION].recommended_config["instance_type"] == "m6g.large"

    def test_unpriced_target_is_skipped(self, processor, make_resource):
        # c7i.large is not in the catalog
        recs = _by_type(processor.process([make_resource("ec2", "c6i.large")]))
        assert MOD_GENERATION_UPGRADE not in recs
        assert recs[MOD_GRAVITON_MIGRATION].recommended_config["instance_type"] == "c6g.large"

    def test_more_expensive_target_is_skipped(self, processor, make_resource):
        recs = _by_type(processor.process([make_resource("ec2", "m6i.large")]))
        # m7i.large costs more than m6i.large
        assert MOD_GENERATION_UPGRADE not in recs
        assert MOD_GRAVITON_MIGRATION in recs

    def test_no_rule_for_graviton_family(self, processor, make_resource):
        result = processor.process([make_resource("ec2", "t4g.micro")])
        assert result.recommendations == []
        assert result.summary.matched_resources == 1


class TestEBSRules:

    def test_gp2_to_gp3_default_size(self, processor, make_resource):
        recs = _by_type(processor.process([make_resource("ebs", "gp2")]))
        rec = recs[MOD_VOLUME_TYPE_UPGRADE]
        assert rec.current_config == {"volume_type": "gp2", "size_gb": "100"}
        assert rec.impact.current_cost == pytest.approx(10.0)
        assert rec.impact.projected_cost == pytest.approx(8.0)
        assert rec.impact.savings_percentage == pytest.approx(20.0)

    def test_gp2_to_gp3_tagged_size(self, processor, make_resource):
        recs = _by_type(processor.process([make_resource("aws:ec2/volume:Volume", "gp2", tags={"size": "500"})]))
        assert recs[MOD_VOLUME_TYPE_UPGRADE].impact.estimated_savings == pytest.approx(10.0)

    def test_other_volume_types(self, processor, make_resource):
        assert processor.process([make_resource("ebs", "gp3")]).recommendations == []


class TestRDSRules:

    def test_mysql_t3_both_rules(self, processor, make_resource):
        recs = _by_type(processor.process([make_resource("rds", "db.t3.medium")]))
        assert recs[MOD_GENERATION_UPGRADE].recommended_config["instance_type"] == "db.t4g.medium"
        assert recs[MOD_GRAVITON_MIGRATION].recommended_config["instance_type"] == "db.t4g.medium"
        assert recs[MOD_GRAVITON_MIGRATION].recommended_config["engine"] == "MySQL"

    def test_engine_without_graviton_support(self, processor, make_resource):
        result = processor.process([make_resource("rds", "db.t3.medium", tags={"engine": "oracle"})])
        assert MOD_GRAVITON_MIGRATION not in _by_type(result)

    def test_postgres_m5(self, processor, make_resource):
        recs = _by_type(processor.process([make_resource("rds", "db.m5.large", tags={"engine": "postgres"})]))
        assert recs[MOD_GENERATION_UPGRADE].recommended_config["instance_type"] == "db.m6i.large"
        assert recs[MOD_GRAVITON_MIGRATION].impact.estimated_savings == pytest.approx((0.178 - 0.159) * 730)


class TestBatch:

    def test_batch_limit(self, processor, make_resource):
        with pytest.raises(BatchSizeError, match="batch size 101 exceeds maximum of 100"):
            processor.process([make_resource("ec2", "t3.micro") for _ in range(101)])

    def test_batch_at_limit(self, processor, make_resource):
        result = processor.process([make_resource("ebs", "gp2") for _ in range(100)])
        assert result.summary.total_resources == 100
        assert result.summary.recommendation_count == 100
        assert result.summary.total_savings == pytest.approx(200.0)

    def test_empty_batch(self, processor):
        result = processor.process([])
        assert result.recommendations == []
        assert result.summary.to_dict()["total_resources"] == 0

    def test_summary(self, processor, make_resource):
        result = processor.process([
            make_resource("ec2", "t3.micro"),
            make_resource("ebs", "gp2"),
            make_resource("ec2", "n2-standard-2", provider="gcp"),
            make_resource("s3", "STANDARD"),
        ])
        summary = result.summary
        assert summary.total_resources == 4
        assert summary.matched_resources == 3
        assert summary.skipped_resources == 1
        assert summary.recommendation_count == 3
        assert summary.total_savings == pytest.approx(
            sum(rec.impact.estimated_savings for rec in result.recommendations)
        )

    def test_filter(self, processor, make_resource):
        resources = [
            make_resource("aws:ec2/instance:Instance", "t3.micro", tags={"env": "prod"}),
            make_resource("ec2", "t2.micro", tags={"env": "dev"}),
            make_resource("ebs", "gp2", tags={"env": "prod"}),
        ]
        result = processor.process(resources, RecommendationFilter(resource_type="ec2", tags={"env": "prod"}))
        assert result.summary.matched_resources == 1
        assert result.summary.skipped_resources == 2
        assert {rec.current_config["instance_type"] for rec in result.recommendations} == {"t3.micro"}

    def test_legacy_filter_sku_mode(self, processor):
        result = processor.process(None, RecommendationFilter(resource_type="ec2", sku="t2.micro", region="us-east-1"))
        assert result.summary.total_resources == 1
        assert result.recommendations[0].recommended_config["instance_type"] == "t3.micro"

    def test_filter_without_sku_and_no_resources(self, processor):
        result = processor.process(None, RecommendationFilter(resource_type="ec2"))
        assert result.summary.total_resources == 0

    def test_input_is_not_mutated(self, processor, make_resource):
        resource = make_resource("aws:ec2/instance:Instance", "t3.micro")
        processor.process([resource])
        assert resource.resource_type == "aws:ec2/instance:Instance"

    def test_recommendation_ids_are_unique(self, processor, make_resource):
        result = processor.process([make_resource("ec2", "t3.micro"), make_resource("ec2", "t3.micro")])
        ids = [rec.id for rec in result.recommendations]
        assert len(ids) == len(set(ids)) == 4

    def test_single_info_summary_line(self, processor, make_resource, caplog):
        with caplog.at_level(logging.INFO, logger="costengine.services.recommendations"):
            processor.process([make_resource("ec2", "t3.micro"), make_resource("ebs", "gp2")])
        info_records = [
            record for record in caplog.records
            if record.name == "costengine.services.recommendations" and record.levelno == logging.INFO
        ]
        assert len(info_records) == 1
        assert "Batch recommendations generated" in info_records[0].getMessage()


class TestStrictValidation:

    def test_non_aws_rejected(self, pricing_client, make_resource):
        processor = RecommendationProcessor(pricing_client=pricing_client, max_batch_size=100, strict_validation=True)
        with pytest.raises(StrictValidationError, match="unsupported provider 'azure'"):
            processor.process([make_resource("vm", "Standard_B1s", provider="azure")])

    def test_unsupported_service_rejected(self, pricing_client, make_resource):
        processor = RecommendationProcessor(pricing_client=pricing_client, max_batch_size=100, strict_validation=True)
        with pytest.raises(StrictValidationError, match="does not support recommendations"):
            processor.process([make_resource("s3", "STANDARD")])

    def test_lenient_mode_skips(self, processor, make_resource):
        result = processor.process([make_resource("vm", "Standard_B1s", provider="azure")])
        assert result.summary.skipped_resources == 1


def test_missing_impact_is_not_aggregated():
    stats = BatchStats()
    assert stats.add_impact(None) is False
    assert stats.total_savings == 0.0



def test_recommendation_without_impact_is_returned_but_not_summed(processor, make_resource, caplog):
    no_impact = Recommendation(
        id="rec-without-impact",
        category="COST",
        action_type="MODIFY",
        modification_type=MOD_VOLUME_TYPE_UPGRADE,
        resource=RecommendedResource(provider="aws", resource_type="ebs", region="us-east-1", sku="gp2"),
        current_config={"volume_type": "gp2"},
        recommended_config={"volume_type": "gp3"},
        impact=None,
        priority="MEDIUM",
        confidence_score=0.9,
        description="Upgrade to gp3",
    )
    with patch.object(RecommendationProcessor, "_ebs_recommendations", return_value=[no_impact]):
        with caplog.at_level(logging.WARNING, logger="costengine.services.recommendations"):
            result = processor.process([make_resource("ec2", "t2.micro"), make_resource("ebs", "gp2")])

    assert result.summary.recommendation_count == 2
    assert result.summary.total_savings == pytest.approx((0.0116 - 0.0104) * 730)
    assert "rec-without-impact" in {rec.id for rec in result.recommendations}
    assert any("has no impact data" in record.getMessage() for record in caplog.records)
    assert result.to_dict()["recommendations"][1]["impact"] is None

def test_unpriced_catalog_yields_nothing(make_resource):
    pricing = Mock()
    pricing.region = "us-east-1"
    pricing.ec2_on_demand_price_per_hour.return_value = (0.0, False)
    processor = RecommendationProcessor(pricing_client=pricing, max_batch_size=10, strict_validation=False)

    result = processor.process([make_resource("ec2", "t3.micro")])

    assert result.recommendations == []
    assert result.summary.matched_resources == 1
