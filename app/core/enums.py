from enum import Enum


class InstallmentStatus(str, Enum):
    draft = "draft"
    pending = "pending"
    due_soon = "due_soon"
    overdue = "overdue"
    partial = "partial"
    paid = "paid"
    cancelled = "cancelled"


class PaymentPlanStatus(str, Enum):
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class PaymentFrequency(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"


class JobStatus(str, Enum):
    running = "running"
    success = "success"
    failed = "failed"


class JobHealth(str, Enum):
    healthy = "healthy"
    warning = "warning"
    critical = "critical"


class AuditAction(str, Enum):
    CREATE = "create"
    STATUS_CHANGE = "status_change"
    PAYMENT_RECORDED = "payment_recorded"
    CANCEL = "cancel"


STATUS_UPDATE_JOB_NAME = "update-installment-statuses"
