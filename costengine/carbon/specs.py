"""
Embedded power and hardware specs used by the carbon estimators.

Three CSV tables ship with the package under carbon/data:
    instance_specs.csv  instance type, vCPU count, min/max watts per vCPU
    gpu_specs.csv       instance type, GPU model, GPU count, TDP per GPU
    storage_specs.csv   service, storage class, technology, replication, Wh/TB-h

Tables are parsed once, on first use, behind a lock. Malformed rows are skipped
with a warning; a missing file is fatal.
"""
import csv
import logging
import threading
from pathlib import Path
from typing import Dict, Optional
from dataclasses import dataclass

from costengine.core.config import config

logger = logging.getLogger(__name__)


class CarbonDataError(Exception):
    """Raised when an embedded carbon spec table cannot be read."""
    pass


@dataclass(frozen=True)
class InstanceSpec:
    instance_type: str
    vcpu_count: int
    min_watts: float  # per vCPU, idle
    max_watts: float  # per vCPU, full load
    architecture: str = "x86_64"


@dataclass(frozen=True)
class GPUSpec:
    instance_type: str
    gpu_model: str
    gpu_count: int
    tdp_per_gpu_watts: float


@dataclass(frozen=True)
class StorageSpec:
    service_type: str
    storage_class: str
    technology: str  # "SSD" | "HDD"
    replication_factor: int
    power_coefficient: float  # Wh per TB-hour


def parse_number(raw: str) -> float:
    """Parse a CSV number, accepting a decimal comma ("1,69")."""
    value = (raw or "").strip()
    if "," in value and "." not in value:
        value = value.replace(",", ".")
    return float(value)


def storage_key(service_type: str, storage_class: str) -> str:
    return f"{(service_type or '').strip().lower()}:{(storage_class or '').strip().upper()}"


def _read_rows(path: Path):
    if not path.exists():
        raise CarbonDataError(f"Carbon spec table not found: {path}")
    with open(path, "r", encoding="utf-8", newline="") as f:
        yield from csv.DictReader(f)


class SpecTables:
    """Lazily loaded instance, GPU and storage spec tables."""

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = Path(data_dir or config.CARBON_DATA_DIR)
        self._lock = threading.Lock()
        self._loaded = False
        self._instances: Dict[str, InstanceSpec] = {}
        self._gpus: Dict[str, GPUSpec] = {}
        self._storage: Dict[str, StorageSpec] = {}

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        with self._lock:
            if self._loaded:
                return
            self._instances = self._load_instances()
            self._gpus = self._load_gpus()
            self._storage = self._load_storage()
            self._loaded = True
            logger.info(
                f"Loaded carbon specs: {len(self._instances)} instance types, "
                f"{len(self._gpus)} GPU instance types, {len(self._storage)} storage classes"
            )

    def _load_instances(self) -> Dict[str, InstanceSpec]:
        specs: Dict[str, InstanceSpec] = {}
        for line, row in enumerate(_read_rows(self.data_dir / "instance_specs.csv"), start=2):
            try:
                instance_type = row["instance_type"].strip().lower()
                vcpu = int(row["vcpu"])
                min_watts = parse_number(row["min_watts"])
                max_watts = parse_number(row["max_watts"])
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping malformed instance spec row {line}: {e}")
                continue
            if not instance_type or vcpu <= 0 or max_watts < min_watts:
                logger.warning(f"Skipping invalid instance spec row {line}: {row}")
                continue
            specs[instance_type] = InstanceSpec(
                instance_type=instance_type,
                vcpu_count=vcpu,
                min_watts=min_watts,
                max_watts=max_watts,
                architecture=(row.get("architecture") or "x86_64").strip().lower(),
            )
        return specs

    def _load_gpus(self) -> Dict[str, GPUSpec]:
        specs: Dict[str, GPUSpec] = {}
        for line, row in enumerate(_read_rows(self.data_dir / "gpu_specs.csv"), start=2):
            try:
                instance_type = row["instance_type"].strip().lower()
                spec = GPUSpec(
                    instance_type=instance_type,
                    gpu_model=row["gpu_model"].strip(),
                    gpu_count=int(row["gpu_count"]),
                    tdp_per_gpu_watts=parse_number(row["tdp_per_gpu_watts"]),
                )
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping malformed GPU spec row {line}: {e}")
                continue
            if not instance_type or spec.gpu_count <= 0:
                logger.warning(f"Skipping invalid GPU spec row {line}: {row}")
                continue
            specs[instance_type] = spec
        return specs

    def _load_storage(self) -> Dict[str, StorageSpec]:
        specs: Dict[str, StorageSpec] = {}
        for line, row in enumerate(_read_rows(self.data_dir / "storage_specs.csv"), start=2):
            try:
                spec = StorageSpec(
                    service_type=row["service_type"].strip().lower(),
                    storage_class=row["storage_class"].strip(),
                    technology=row["technology"].strip().upper(),
                    replication_factor=int(row["replication_factor"]),
                    power_coefficient=parse_number(row["power_coefficient_wh_per_tbh"]),
                )
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping malformed storage spec row {line}: {e}")
                continue
            specs[storage_key(spec.service_type, spec.storage_class)] = spec
        return specs

    def instance(self, instance_type: str) -> Optional[InstanceSpec]:
        self._ensure_loaded()
        return self._instances.get((instance_type or "").strip().lower())

    def gpu(self, instance_type: str) -> Optional[GPUSpec]:
        self._ensure_loaded()
        return self._gpus.get((instance_type or "").strip().lower())

    def storage(self, service_type: str, storage_class: str) -> Optional[StorageSpec]:
        self._ensure_loaded()
        return self._storage.get(storage_key(service_type, storage_class))


_tables: Optional[SpecTables] = None
_tables_lock = threading.Lock()


def get_spec_tables() -> SpecTables:
    """Get the process-wide spec tables (parsed on first lookup)."""
    global _tables
    if _tables is None:
        with _tables_lock:
            if _tables is None:
                _tables = SpecTables()
    return _tables


def get_instance_spec(instance_type: str) -> Optional[InstanceSpec]:
    return get_spec_tables().instance(instance_type)


def get_gpu_spec(instance_type: str) -> Optional[GPUSpec]:
    return get_spec_tables().gpu(instance_type)


def get_storage_spec(service_type: str, storage_class: str) -> Optional[StorageSpec]:
    return get_spec_tables().storage(service_type, storage_class)
