# registration_payments package
__version__ = "0.1.0"

from .database import (
    Profile,
    Order,
    OrderItem,
    OrderPaymentStatus,
    init_db,
    close_db,
    get_db,
)
from .batching import process_in_batches

# Reconciliation exports
from .reconciliation import (
    ReconciliationService,
    ReconciliationSummary,
    ReconciliationRequest,
    DiscrepancyType,
    Reconciler,
    ReportGenerator,
    get_psp_fetcher,
)
from .customers import CustomerDirectoryService
from .verification import OrderVerificationService
