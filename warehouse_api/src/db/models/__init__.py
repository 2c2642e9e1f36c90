"""
ORM models for tenancy, security, master data, inventory, jobs, production,
purchasing, sales, quality, cold chain and transfers.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

# Re-export commonly used models for convenience and to ensure import side-effects
# register all mapped classes with SQLAlchemy metadata.

from .tenancy import (  # noqa: F401
    Tenant,
    Site,
    UserSite,
)
from .security import (  # noqa: F401
    User,
    Role,
    Permission,
    UserRole,
    RolePermission,
)
from .audit import AuditEvent  # noqa: F401
from .master_data import (  # noqa: F401
    Item,
    ItemUomConversion,
    Location,
)
from .inventory import (  # noqa: F401
    InventoryEvent,
    InventoryBalance,
    ReasonCode,
    CycleCount,
    CycleCountLine,
)
from .jobs import (  # noqa: F401
    Job,
    JobLine,
)
from .production import (  # noqa: F401
    Bom,
    BomComponent,
    ProductionOrder,
    ProductionOutput,
    ProductionConsumption,
)
from .procurement import (  # noqa: F401
    Supplier,
    PurchaseOrder,
    PurchaseOrderLine,
    Receipt,
    ReceiptLine,
)
from .sales import (  # noqa: F401
    Customer,
    SalesOrder,
    SalesOrderLine,
    PickTask,
    PickTaskLine,
    Shipment,
)
from .quality import (  # noqa: F401
    Ncr,
    Capa,
)
from .cold_chain import (  # noqa: F401
    TemperatureZone,
    TemperatureReading,
    TemperatureExcursion,
)
from .transfers import (  # noqa: F401
    TransferOrder,
    TransferLine,
)
