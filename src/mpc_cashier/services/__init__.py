from .token_service import TokenService
from .quickpayments_service import QuickPaymentsService

__all__ = ["TokenService", "QuickPaymentsService"]
