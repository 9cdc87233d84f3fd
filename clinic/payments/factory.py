"""
工厂函数：根据网关名返回配置好密钥的 Adapter
新增网关时在此注册
"""
from typing import Dict, Tuple, Type

from clinic.tenant_settings import get_setting_or_env

from .adapters import BasePaymentAdapter, GmoAdapter, SquareAdapter

# 网关 -> (Adapter 类, 密钥 (category, key, settings 名), 通知 URL 配置 或 None)
_ADAPTER_REGISTRY: Dict[str, Tuple[Type[BasePaymentAdapter], tuple, tuple | None]] = {
    "square": (
        SquareAdapter,
        ("square", "webhook_signature_key", "SQUARE_WEBHOOK_SIGNATURE_KEY"),
        ("square", "webhook_notification_url", "SQUARE_WEBHOOK_NOTIFICATION_URL"),
    ),
    "gmo": (
        GmoAdapter,
        ("gmo", "shop_pass", "GMO_SHOP_PASS"),
        None,
    ),
}


def get_adapter(gateway: str, tenant_id: str | None = None) -> BasePaymentAdapter:
    entry = _ADAPTER_REGISTRY.get(str(gateway).lower())
    if entry is None:
        raise ValueError(f"Unknown payment gateway: {gateway}. Known: {list(_ADAPTER_REGISTRY.keys())}")
    adapter_cls, secret_conf, url_conf = entry
    secret = get_setting_or_env(tenant_id, *secret_conf)
    url = get_setting_or_env(tenant_id, *url_conf) if url_conf else ""
    return adapter_cls(secret=secret, notification_url=url)


def register_adapter(gateway: str, adapter_cls: Type[BasePaymentAdapter], secret_conf: tuple, url_conf: tuple | None = None) -> None:
    _ADAPTER_REGISTRY[gateway.lower()] = (adapter_cls, secret_conf, url_conf)


def known_gateways():
    return list(_ADAPTER_REGISTRY.keys())
