"""
Tests for carbon estimators, spec tables and grid factors.
"""
import pytest

from costengine.carbon.constants import AWS_PUE, DEFAULT_UTILIZATION
from costengine.carbon.embodied import estimate_embodied_carbon_kg, instance_family, months_for_hours
from costengine.carbon.estimators import (
    elasticache_to_ec2_instance_type,
    estimate_dynamodb_carbon_grams,
    estimate_ebs_carbon_grams,
    estimate_ec2_carbon_grams,
    estimate_ec2_carbon_with_breakdown,
    estimate_eks_carbon_grams,
    estimate_elasticache_carbon_grams,
    estimate_lambda_carbon_grams,
    estimate_rds_carbon_with_breakdown,
    estimate_s3_carbon_grams,
    rds_to_ec2_instance_type,
    resolve_utilization,
)
from costengine.carbon.grid_factors import DEFAULT_GRID_FACTOR, get_grid_factor
from costengine.carbon.specs import CarbonDataError, SpecTables, get_gpu_spec, get_instance_spec, parse_number


class TestSpecTables:

    def test_decimal_comma(self):
        assert parse_number("1,69") == pytest.approx(1.69)
        assert parse_number(" 2.5 ") == pytest.approx(2.5)

    def test_instance_spec(self):
        spec = get_instance_spec("T3.Micro")
        assert spec.vcpu_count == 2
        assert spec.min_watts == pytest.approx(0.47)
        assert spec.max_watts == pytest.approx(1.69)

    def test_gpu_spec(self):
        spec = get_gpu_spec("g4dn.xlarge")
        assert spec.gpu_model == "T4"
        assert spec.gpu_count == 1
        assert spec.tdp_per_gpu_watts == pytest.approx(70.0)
        assert get_gpu_spec("t3.micro") is None

    def test_missing_table_is_fatal(self, tmp_path):
        tables = SpecTables(str(tmp_path))
        with pytest.raises(CarbonDataError, match="not found"):
            tables.instance("t3.micro")

    def test_malformed_rows_are_skipped(self, tmp_path):
        (tmp_path / "instance_specs.csv").write_text(
            "instance_type,architecture,vcpu,min_watts,max_watts\n"
            "good.large,x86_64,2,\"0,5\",\"1,5\"\n"
            "bad.large,x86_64,two,1,2\n"
            "inverted.large,x86_64,2,3,1\n"
        )
        (tmp_path / "gpu_specs.csv").write_text("instance_type,gpu_model,gpu_count,tdp_per_gpu_watts\n")
        (tmp_path / "storage_specs.csv").write_text(
            "service_type,storage_class,technology,replication_factor,power_coefficient_wh_per_tbh\n"
        )
        tables = SpecTables(str(tmp_path))

        assert tables.instance("good.large").max_watts == pytest.approx(1.5)
        assert tables.instance("bad.large") is None
        assert tables.instance("inverted.large") is None


class TestGridFactors:

    def test_known_region(self):
        assert get_grid_factor("us-east-1") == pytest.approx(0.000379)
        assert get_grid_factor("US-EAST-1") == pytest.approx(0.000379)

    def test_unknown_region(self):
        assert get_grid_factor("mars-north-1") == DEFAULT_GRID_FACTOR


class TestUtilization:

    def test_default(self):
        assert resolve_utilization() == DEFAULT_UTILIZATION

    def test_request_value(self):
        assert resolve_utilization(0.8) == pytest.approx(0.8)

    def test_override_wins(self):
        assert resolve_utilization(0.8, 0.2) == pytest.approx(0.2)

    def test_zero_means_unset(self):
        assert resolve_utilization(0.0, 0.0) == DEFAULT_UTILIZATION

    def test_clamped(self):
        assert resolve_utilization(1.7) == 1.0


class TestEC2Carbon:

    def test_t3_micro(self):
        grams, found = estimate_ec2_carbon_grams("t3.micro", "us-east-1", 0.5, 730)
        expected = (0.47 + 0.5 * (1.69 - 0.47)) * 2 * 730 / 1000 * AWS_PUE * 0.000379 * 1_000_000
        assert found is True
        assert grams == pytest.approx(expected)

    def test_gpu_adds_to_cpu(self):
        cpu, gpu, found = estimate_ec2_carbon_with_breakdown("g4dn.xlarge", "us-east-1", 0.5, 730)
        total, _ = estimate_ec2_carbon_grams("g4dn.xlarge", "us-east-1", 0.5, 730)
        expected_gpu = 70 * 1 * 0.5 * 730 / 1000 * AWS_PUE * 0.000379 * 1_000_000
        assert found is True
        assert gpu == pytest.approx(expected_gpu)
        assert total == pytest.approx(cpu + gpu)

    def test_gpu_excluded(self):
        _, gpu, _ = estimate_ec2_carbon_with_breakdown("g4dn.xlarge", "us-east-1", 0.5, 730, include_gpu=False)
        assert gpu == 0.0

    def test_higher_utilization_emits_more(self):
        low, _ = estimate_ec2_carbon_grams("m5.large", "us-east-1", 0.1, 730)
        high, _ = estimate_ec2_carbon_grams("m5.large", "us-east-1", 0.9, 730)
        assert high > low

    def test_cleaner_grid_emits_less(self):
        virginia, _ = estimate_ec2_carbon_grams("m5.large", "us-east-1", 0.5, 730)
        stockholm, _ = estimate_ec2_carbon_grams("m5.large", "eu-north-1", 0.5, 730)
        assert stockholm < virginia

    def test_unknown_instance(self):
        assert estimate_ec2_carbon_grams("x9.huge", "us-east-1", 0.5, 730) == (0.0, False)


class TestStorageCarbon:

    def test_ebs_ssd(self):
        grams, found = estimate_ebs_carbon_grams("gp2", 1024, "us-east-1", 730)
        expected = 1 * 730 * 1.2 * 2 / 1000 * AWS_PUE * 0.000379 * 1_000_000
        assert found is True
        assert grams == pytest.approx(expected)

    def test_hdd_below_ssd(self):
        ssd, _ = estimate_ebs_carbon_grams("gp3", 100, "us-east-1", 730)
        hdd, _ = estimate_ebs_carbon_grams("st1", 100, "us-east-1", 730)
        assert hdd < ssd

    def test_s3_storage_class_case(self):
        grams, found = estimate_s3_carbon_grams("standard", 100, "us-east-1", 730)
        assert found is True
        assert grams > 0

    def test_unknown_class(self):
        assert estimate_s3_carbon_grams("REDUCED_REDUNDANCY", 100, "us-east-1", 730) == (0.0, False)

    def test_negative_size(self):
        assert estimate_ebs_carbon_grams("gp2", -1, "us-east-1", 730) == (0.0, False)

    def test_dynamodb_triple_replication(self):
        grams, found = estimate_dynamodb_carbon_grams(1024, "us-east-1", 730)
        expected = 1 * 730 * 1.2 * 3 / 1000 * AWS_PUE * 0.000379 * 1_000_000
        assert found is True
        assert grams == pytest.approx(expected)


class TestManagedServiceCarbon:

    def test_rds_uses_ec2_equivalent(self):
        assert rds_to_ec2_instance_type("db.m5.large") == "m5.large"
        compute, storage, found = estimate_rds_carbon_with_breakdown(
            "db.m5.large", "us-east-1", 0.5, 730, "gp2", 100
        )
        ec2, _ = estimate_ec2_carbon_grams("m5.large", "us-east-1", 0.5, 730, include_gpu=False)
        ebs, _ = estimate_ebs_carbon_grams("gp2", 100, "us-east-1", 730)
        assert found is True
        assert compute == pytest.approx(ec2)
        assert storage == pytest.approx(ebs)

    def test_rds_multi_az_doubles(self):
        single = estimate_rds_carbon_with_breakdown("db.m5.large", "us-east-1", 0.5, 730, "gp2", 100)
        multi = estimate_rds_carbon_with_breakdown("db.m5.large", "us-east-1", 0.5, 730, "gp2", 100, multi_az=True)
        assert multi[0] == pytest.approx(2 * single[0])
        assert multi[1] == pytest.approx(2 * single[1])

    def test_lambda_arm_discount(self):
        x86, _ = estimate_lambda_carbon_grams(1792, 1000, 3600, "x86_64", "us-east-1")
        arm, _ = estimate_lambda_carbon_grams(1792, 1000, 3600, "arm64", "us-east-1")
        # one vCPU for one hour at 50% utilization
        expected = (2.12 + 0.5 * (4.5 - 2.12)) / 1000 * AWS_PUE * 0.000379 * 1_000_000
        assert x86 == pytest.approx(expected)
        assert arm == pytest.approx(0.8 * x86)

    def test_lambda_invalid_memory(self):
        assert estimate_lambda_carbon_grams(0, 100, 10, "x86_64", "us-east-1") == (0.0, False)

    def test_elasticache_nodes(self):
        assert elasticache_to_ec2_instance_type("cache.r5.large") == "r5.large"
        one, _ = estimate_elasticache_carbon_grams("cache.r5.large", "us-east-1", 0.5, 730, 1)
        three, _ = estimate_elasticache_carbon_grams("cache.r5.large", "us-east-1", 0.5, 730, 3)
        assert three == pytest.approx(3 * one)

    def test_eks_control_plane_is_zero(self):
        assert estimate_eks_carbon_grams() == (0.0, True)


class TestEmbodiedCarbon:

    def test_share_of_family_server(self):
        kg, found = estimate_embodied_carbon_kg("m5.large", 1.0)
        assert found is True
        assert kg == pytest.approx(1000.0 / 48 * 2 / 96)

    def test_scales_with_months(self):
        one, _ = estimate_embodied_carbon_kg("t3.micro", 1.0)
        twelve, _ = estimate_embodied_carbon_kg("t3.micro", 12.0)
        assert twelve == pytest.approx(12 * one)

    def test_unknown_or_empty_period(self):
        assert estimate_embodied_carbon_kg("x9.huge", 1.0) == (0.0, False)
        assert estimate_embodied_carbon_kg("t3.micro", 0) == (0.0, False)

    def test_helpers(self):
        assert instance_family("M5.Large") == "m5"
        assert months_for_hours(730) == pytest.approx(1.0)
