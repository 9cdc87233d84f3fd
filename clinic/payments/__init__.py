"""
支付网关接入：Adapter 模式
不同网关（Square JSON / GMO form）统一转换为 PaymentNotice，
业务逻辑只认识 PaymentNotice，新增网关只需新增 Adapter。
"""
from .types import PaymentNotice
from .adapters import BasePaymentAdapter, GmoAdapter, SquareAdapter
from .factory import get_adapter, register_adapter

__all__ = [
    "PaymentNotice",
    "BasePaymentAdapter",
    "GmoAdapter",
    "SquareAdapter",
    "get_adapter",
    "register_adapter",
]
