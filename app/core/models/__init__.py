from app.core.models.agency import Agency
from app.core.models.payment_plan import PaymentPlan
from app.core.models.installment import Installment
from app.core.models.audit_log import AuditLog
from app.core.models.job_log import JobLog

__all__ = [
    "Agency",
    "PaymentPlan",
    "Installment",
    "AuditLog",
    "JobLog",
]
