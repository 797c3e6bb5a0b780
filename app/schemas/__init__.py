from .purchase import (
    PurchaseParams,
    PurchaseRequest,
    PurchaseAccepted,
    JobOut,
    JobSummary,
    JobEnvelope,
    JobList,
    Msg,
    CleanupOut,
    HealthOut,
)

__all__ = [
    "PurchaseParams", "PurchaseRequest", "PurchaseAccepted",
    "JobOut", "JobSummary", "JobEnvelope", "JobList",
    "Msg", "CleanupOut", "HealthOut",
]
