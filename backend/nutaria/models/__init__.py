"""Aggregate model imports for Alembic auto-detection."""

# Users
from nutaria.models.user import UserProfile, UserRole  # noqa: F401

# Reference data
from nutaria.models.catalog import Product, Unit, Warehouse  # noqa: F401
from nutaria.models.supply import (  # noqa: F401
    Customer, Shipment, StockLevel, Supplier, SupplyBatch,
)

# Process definitions and execution
from nutaria.models.process import (  # noqa: F401
    BatchStepTransition,
    Process,
    ProcessLotRun,
    ProcessStep,
    ProcessStepName,
    ProcessStepRun,
    ProductionBatch,
    ProductProcess,
    ReworkedLot,
)
from nutaria.models.quality import (  # noqa: F401
    ProcessMeasurement,
    ProcessNonConformance,
    ProcessSignoff,
    ProcessStepQualityCheck,
    ProcessStepQualityCheckItem,
    ProcessStepQualityParameter,
    QualityParameter,
)

# Step details
from nutaria.models.step_details import (  # noqa: F401
    ProcessDryingRun,
    ProcessDryingWaste,
    ProcessForeignObjectRejection,
    ProcessMetalDetector,
    ProcessMetalDetectorWaste,
    ProcessSortingOutput,
    ProcessSortingWaste,
    ProcessWashingRun,
    ProcessWashingWaste,
)
from nutaria.models.packaging import (  # noqa: F401
    ProcessPackagingMetalCheck,
    ProcessPackagingMetalCheckRejection,
    ProcessPackagingPackEntry,
    ProcessPackagingPhoto,
    ProcessPackagingRun,
    ProcessPackagingStorageAllocation,
    ProcessPackagingWaste,
    ProcessPackagingWeightCheck,
)

# Daily operations
from nutaria.models.daily_check import DailyCheck, MetalDetectorHourlyCheck  # noqa: F401
from nutaria.models.activity_log import ActivityLog  # noqa: F401
