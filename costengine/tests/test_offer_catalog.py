"""
Tests for offer document parsing and service index construction.
"""
import gzip
import json
import math
import pytest

from costengine.pricing.offer_catalog import (
    EmbeddedCatalogSource,
    InMemoryCatalogSource,
    PricingDataError,
    load_offer_document,
)
from costengine.pricing.price_index import (
    EC2Key,
    build_catalog,
    index_cloudwatch,
    index_dynamodb,
    index_ec2_instances,
    index_rds_storage,
)


def _offer(products, terms, publication_date="2024-09-01T00:00:00Z"):
    return json.dumps({
        "publicationDate": publication_date,
        "products": products,
        "terms": {"OnDemand": terms},
    }).encode("utf-8")


def _term(sku, *dimensions):
    return {
        sku: {
            f"{sku}.TERM": {
                "priceDimensions": {
                    f"{sku}.DIM{i}": dimension for i, dimension in enumerate(dimensions)
                }
            }
        }
    }


TIERED = _offer(
    {"SKU1": {"sku": "SKU1", "productFamily": "Data Payload", "attributes": {"regionCode": "us-east-1"}}},
    _term(
        "SKU1",
        {"unit": "GB", "pricePerUnit": {"USD": "0.25"}, "beginRange": "10240", "endRange": "Inf"},
        {"unit": "GB", "pricePerUnit": {"USD": "0.50"}, "beginRange": "0", "endRange": "10240"},
    ),
)


def test_load_plain_json_document():
    """A plain JSON document parses into products and sorted dimensions."""
    doc = load_offer_document(TIERED, "AmazonCloudWatch")

    assert doc.service_code == "AmazonCloudWatch"
    assert doc.publication_date == "2024-09-01T00:00:00Z"
    dimensions = doc.dimensions_for("SKU1")
    assert [d.price_per_unit for d in dimensions] == [0.50, 0.25]
    assert dimensions[0].end_range == 10240
    assert math.isinf(dimensions[1].end_range)


def test_load_gzipped_document():
    """Gzip-compressed documents are detected by their magic bytes."""
    doc = load_offer_document(gzip.compress(TIERED), "AmazonCloudWatch")
    assert "SKU1" in doc.products


@pytest.mark.parametrize("raw, message", [
    (b"", "empty"),
    (b"{not json", "not valid JSON"),
    (b"[1, 2, 3]", "root must be an object"),
    (b'{"products": {}}', "no products"),
])
def test_load_rejects_bad_documents(raw, message):
    """Empty, undecodable or product-less documents are fatal."""
    with pytest.raises(PricingDataError, match=message):
        load_offer_document(raw, "AmazonEC2")


def test_detect_region_from_location():
    """Documents without regionCode fall back to the location name."""
    raw = _offer(
        {"A": {"sku": "A", "productFamily": "Storage", "attributes": {"location": "US West (Oregon)"}}},
        {},
    )
    assert load_offer_document(raw, "AmazonS3").detect_region() == "us-west-2"


def test_embedded_source_missing_region(tmp_path):
    """A region without embedded documents fails with a clear error."""
    source = EmbeddedCatalogSource(str(tmp_path), "eu-west-3")
    with pytest.raises(PricingDataError, match="no pricing document for region eu-west-3"):
        source.load("AmazonEC2")


def test_ec2_index_skips_reservations_and_licensed_images(embedded_source):
    """Capacity reservations (priced 0) and SQL images never answer a Linux lookup."""
    index = index_ec2_instances(embedded_source.load("AmazonEC2"))

    assert index[EC2Key.of("t3.micro", "Linux", "Shared")].price == pytest.approx(0.0104)
    assert index[EC2Key.of("t3.micro", "Windows", "Shared")].price == pytest.approx(0.0196)


def test_ec2_key_is_canonical():
    """Keys differing only in case or whitespace are equal."""
    assert EC2Key.of(" T3.Micro ", "LINUX", "shared ") == EC2Key.of("t3.micro", "Linux", "Shared")


def test_rds_storage_index_distinguishes_gp3_and_io2(embedded_source):
    """gp3 and io2 share a volumeType with gp2/io1 and are told apart by usage type."""
    index = index_rds_storage(embedded_source.load("AmazonRDS"))

    assert index["gp2"].price == pytest.approx(0.115)
    assert index["gp3"].price == pytest.approx(0.115)
    assert index["io1"].price == pytest.approx(0.125)
    assert index["io2"].price == pytest.approx(0.125)
    assert index["standard"].price == pytest.approx(0.10)


def test_dynamodb_index_skips_free_tier(embedded_source):
    """Provisioned capacity is indexed at its first paid tier."""
    from costengine.pricing.price_index import DynamoDBDimension

    index = index_dynamodb(embedded_source.load("AmazonDynamoDB"))

    assert index[DynamoDBDimension.PROVISIONED_READ].price == pytest.approx(0.00013)
    assert index[DynamoDBDimension.PROVISIONED_WRITE].price == pytest.approx(0.00065)
    assert index[DynamoDBDimension.STORAGE].price == pytest.approx(0.25)


def test_cloudwatch_tiers(embedded_source):
    """Ingestion and metric tiers keep their upper bounds."""
    ingestion, storage, metrics = index_cloudwatch(embedded_source.load("AmazonCloudWatch"))

    assert [tier.rate for tier in ingestion] == [0.5, 0.25, 0.1, 0.05]
    assert ingestion[0].up_to == 10240
    assert math.isinf(ingestion[-1].up_to)
    assert storage.price == pytest.approx(0.03)
    assert metrics[0].up_to == 10000


def test_build_catalog_rejects_foreign_region(raw_documents):
    """Documents published for another region cannot back this catalog."""
    source = InMemoryCatalogSource("us-west-2", raw_documents)
    documents = {code: source.load(code) for code in raw_documents}

    with pytest.raises(PricingDataError, match="expected us-west-2"):
        build_catalog(documents, "us-west-2")


def test_build_catalog_requires_every_service(raw_documents):
    """A missing service document is reported, not silently skipped."""
    source = InMemoryCatalogSource("us-east-1", raw_documents)
    documents = {code: source.load(code) for code in raw_documents if code != "AmazonRDS"}

    with pytest.raises(PricingDataError, match="AmazonRDS"):
        build_catalog(documents, "us-east-1")


def test_catalog_indices_are_read_only(pricing_client):
    """Built indices cannot be mutated."""
    catalog = pricing_client._ensure_catalog()
    with pytest.raises(TypeError):
        catalog.ebs["gp2"] = None
