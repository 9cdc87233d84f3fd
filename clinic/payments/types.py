"""
内部标准格式：各支付网关的通知统一转换为 PaymentNotice
"""
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class PaymentNotice:
    """
    支付结果通知（内部标准）
    reorder_reference：再处方编号（也可能是旧数据的主键），未经校验的原始字符串
    """
    gateway: str
    status: str
    payment_id: str
    event_type: str = ""
    patient_id: str = ""
    product_code: str = ""
    reorder_reference: str = ""
    amount: Optional[float] = None
    completed: bool = False
    raw_data: Any = field(default=None, repr=False)

    @property
    def is_completed(self) -> bool:
        return self.completed

    @property
    def is_reorder(self) -> bool:
        return bool(self.reorder_reference)

    @property
    def idempotency_key(self) -> str:
        return f"{self.payment_id}_{self.status}"
