"""
AWS Price List offer documents.
Reads the embedded bulk offer files (plain or gzipped JSON) and turns them into
typed products and on-demand price dimensions for indexing.

Expected directory structure:
    pricing/data/
        us-east-1/
            AmazonEC2.json      (or AmazonEC2.json.gz)
            AmazonRDS.json
            ...

The parsed document is only kept until the service indices are built.
"""
import json
import gzip
import math
import logging
from pathlib import Path
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field

from costengine.pricing.aws_region_map import get_region_code_for_location

logger = logging.getLogger(__name__)

# Every offer document compiled into the catalog, one per service
SERVICE_CODES = (
    "AmazonEC2",
    "AmazonRDS",
    "AmazonS3",
    "AWSLambda",
    "AmazonDynamoDB",
    "AmazonEKS",
    "AWSELB",
    "AmazonElastiCache",
    "AmazonCloudWatch",
)

GZIP_MAGIC = b"\x1f\x8b"


class PricingDataError(Exception):
    """Raised when embedded pricing data is missing or corrupt."""
    pass


@dataclass
class Product:
    """A priced product (one SKU) from an offer document."""
    sku: str
    product_family: str
    attributes: Dict[str, str] = field(default_factory=dict)

    def attr(self, name: str) -> str:
        """Return an attribute value, or "" when missing."""
        return self.attributes.get(name, "") or ""


@dataclass
class PriceDimension:
    """One on-demand rate for a SKU, valid for usage in [begin_range, end_range)."""
    unit: str
    price_per_unit: float
    begin_range: float = 0.0
    end_range: float = math.inf
    description: str = ""


@dataclass
class OfferDocument:
    """Raw pricing document for one (service, region)."""
    service_code: str
    products: Dict[str, Product]
    on_demand_terms: Dict[str, List[PriceDimension]]  # sku -> dimensions sorted by begin_range
    publication_date: str = ""
    version: str = ""

    def dimensions_for(self, sku: str) -> List[PriceDimension]:
        """Return the on-demand dimensions for a SKU (empty when unpriced)."""
        return self.on_demand_terms.get(sku, [])

    def detect_region(self) -> Optional[str]:
        """
        Return the region code the document was published for.

        Uses the first product carrying a regionCode, or a location that maps
        to a known region. Returns None for documents without regional products.
        """
        for product in self.products.values():
            region_code = product.attr("regionCode")
            if region_code:
                return region_code.strip().lower()
            location = product.attr("location")
            if location:
                mapped = get_region_code_for_location(location)
                if mapped:
                    return mapped
        return None


def _parse_range(value: Any, default: float) -> float:
    """Parse a beginRange/endRange value ("Inf" means unbounded)."""
    if value is None or value == "":
        return default
    if isinstance(value, str) and value.strip().lower() == "inf":
        return math.inf
    return float(value)


def _parse_terms(raw_terms: Dict[str, Any]) -> Dict[str, List[PriceDimension]]:
    """Flatten terms.OnDemand into sku -> price dimensions."""
    on_demand: Dict[str, List[PriceDimension]] = {}
    for sku, term_entries in raw_terms.items():
        dimensions: List[PriceDimension] = []
        for term in (term_entries or {}).values():
            for dim in (term.get("priceDimensions") or {}).values():
                usd = (dim.get("pricePerUnit") or {}).get("USD")
                if usd is None or usd == "":
                    continue
                dimensions.append(PriceDimension(
                    unit=dim.get("unit", ""),
                    price_per_unit=float(usd),
                    begin_range=_parse_range(dim.get("beginRange"), 0.0),
                    end_range=_parse_range(dim.get("endRange"), math.inf),
                    description=dim.get("description", ""),
                ))
        dimensions.sort(key=lambda d: d.begin_range)
        on_demand[sku] = dimensions
    return on_demand


def load_offer_document(raw: bytes, service_code: str) -> OfferDocument:
    """
    Parse a raw AWS Price List offer document.

    Args:
        raw: Document bytes, plain JSON or gzip-compressed JSON
        service_code: AWS service code the document belongs to (e.g. 'AmazonEC2')

    Returns:
        Parsed OfferDocument

    Raises:
        PricingDataError: If the document is empty, undecodable or has no products
    """
    if not raw:
        raise PricingDataError(f"{service_code}: pricing document is empty")

    try:
        if raw[:2] == GZIP_MAGIC:
            raw = gzip.decompress(raw)
        data = json.loads(raw.decode("utf-8"))
    except (OSError, EOFError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PricingDataError(f"{service_code}: pricing document is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise PricingDataError(f"{service_code}: pricing document root must be an object")

    raw_products = data.get("products")
    if not isinstance(raw_products, dict) or not raw_products:
        raise PricingDataError(f"{service_code}: pricing document has no products")

    try:
        products = {
            sku: Product(
                sku=sku,
                product_family=entry.get("productFamily", "") or "",
                attributes=dict(entry.get("attributes") or {}),
            )
            for sku, entry in raw_products.items()
        }
        on_demand = _parse_terms((data.get("terms") or {}).get("OnDemand") or {})
    except (AttributeError, TypeError, ValueError) as e:
        raise PricingDataError(f"{service_code}: malformed pricing document: {e}") from e

    return OfferDocument(
        service_code=service_code,
        products=products,
        on_demand_terms=on_demand,
        publication_date=data.get("publicationDate", "") or "",
        version=data.get("version", "") or "",
    )


class EmbeddedCatalogSource:
    """
    Reads offer documents shipped with the package.

    Each service document lives at <data_dir>/<region>/<ServiceCode>.json[.gz].
    """

    def __init__(self, data_dir: str, region: str):
        self.data_dir = Path(data_dir)
        self.region = region.strip().lower()

    def read(self, service_code: str) -> bytes:
        """
        Return the raw bytes of a service's offer document.

        Raises:
            PricingDataError: If the document for the compiled region is missing
        """
        region_dir = self.data_dir / self.region
        for name in (f"{service_code}.json.gz", f"{service_code}.json"):
            path = region_dir / name
            if path.exists():
                logger.debug(f"Reading offer document {path}")
                try:
                    return path.read_bytes()
                except OSError as e:
                    raise PricingDataError(f"Cannot read offer document {path}: {e}") from e
        raise PricingDataError(
            f"{service_code}: no pricing document for region {self.region} in {region_dir}"
        )

    def load(self, service_code: str) -> OfferDocument:
        """Read and parse one service's offer document."""
        return load_offer_document(self.read(service_code), service_code)


class InMemoryCatalogSource:
    """Serves offer documents from memory (tests and pre-fetched data)."""

    def __init__(self, region: str, documents: Dict[str, bytes]):
        self.region = region.strip().lower()
        self._documents = dict(documents)

    def read(self, service_code: str) -> bytes:
        if service_code not in self._documents:
            raise PricingDataError(
                f"{service_code}: no pricing document for region {self.region}"
            )
        return self._documents[service_code]

    def load(self, service_code: str) -> OfferDocument:
        return load_offer_document(self.read(service_code), service_code)
