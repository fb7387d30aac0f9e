from .details import CardDetails, CheckDetails, CheckAddress, load_details
from .payloads import (
    GatewayPayload,
    CardTokenPayload,
    CheckTokenPayload,
    PnRefTokenPayload,
    QpCardData,
    QpCheckData,
    QpTokenPayload,
    QpInvoiceData,
    QpChargePayload,
    SalePayload,
    RefundPayload,
    RecurringContractPayload,
)
