"""
支付网关 Adapter：验签、解析、转换
"""
import base64
import hashlib
import hmac
import json
import re
from abc import ABC, abstractmethod
from typing import Any, Mapping
from urllib.parse import parse_qsl

from clinic_ops.exceptions import AuthenticationError, ValidationError

from .types import PaymentNotice


def _to_text(raw: bytes | str) -> str:
    if isinstance(raw, bytes):
        return raw.decode("utf-8")
    return raw


def _to_amount(value):
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class BasePaymentAdapter(ABC):
    """
    抽象基类：新增网关时继承并实现 verify / parse / transform
    """

    gateway_id: str = "unknown"

    def __init__(self, secret: str = "", notification_url: str = ""):
        self.secret = secret or ""
        self.notification_url = notification_url or ""

    def process(self, raw: bytes | str, headers: Mapping[str, str] | None = None) -> PaymentNotice:
        """
        verify -> parse -> transform
        验签失败抛 AuthenticationError，格式错误抛 ValidationError
        """
        headers = headers or {}
        if not self.verify(raw, headers):
            raise AuthenticationError(
                message="Invalid webhook signature",
                code="INVALID_SIGNATURE",
                detail={"gateway": self.gateway_id},
            )
        parsed = self.parse(raw)
        notice = self.transform(parsed)
        notice.raw_data = raw
        return notice

    @abstractmethod
    def verify(self, raw: bytes | str, headers: Mapping[str, str]) -> bool:
        pass

    @abstractmethod
    def parse(self, raw: bytes | str) -> Any:
        pass

    @abstractmethod
    def transform(self, parsed: Any) -> PaymentNotice:
        pass


class SquareAdapter(BasePaymentAdapter):
    """
    Square webhook（JSON）
    签名：base64(HMAC-SHA1(key, notification_url + body))，请求头 x-square-hmacsha1-signature
    元数据写在 payment.note：PID:<患者ID>;Product:<商品代码>;Reorder:<编号>
    """

    gateway_id = "square"
    signature_header = "x-square-hmacsha1-signature"
    completed_status = "COMPLETED"

    _NOTE_PATTERNS = {
        "patient_id": re.compile(r"PID:([^;]+)"),
        "product_code": re.compile(r"Product:([^;]+)"),
        "reorder_reference": re.compile(r"Reorder:([^;]+)"),
    }

    def verify(self, raw, headers):
        # 没配置 key 时跳过验签（逐步上线）
        if not self.secret:
            return True
        given = _header(headers, self.signature_header)
        if not given:
            return False
        payload = (self.notification_url + _to_text(raw)).encode("utf-8")
        digest = hmac.new(self.secret.encode("utf-8"), payload, hashlib.sha1).digest()
        expected = base64.b64encode(digest).decode("ascii")
        return hmac.compare_digest(expected, given)

    def parse(self, raw):
        try:
            data = json.loads(_to_text(raw))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError(
                message="Invalid JSON format",
                code="INVALID_JSON",
                detail={"error": str(e)},
            )
        if not isinstance(data, dict):
            raise ValidationError(message="Webhook body must be a JSON object", code="INVALID_JSON")
        return data

    def parse_note(self, note: str) -> dict:
        result = {}
        for key, pattern in self._NOTE_PATTERNS.items():
            m = pattern.search(note or "")
            result[key] = m.group(1).strip() if m else ""
        return result

    def transform(self, parsed):
        payment = ((parsed.get("data") or {}).get("object") or {}).get("payment") or {}
        status = str(payment.get("status") or "")
        meta = self.parse_note(str(payment.get("note") or payment.get("payment_note") or ""))
        amount = (payment.get("amount_money") or {}).get("amount")
        return PaymentNotice(
            gateway=self.gateway_id,
            event_type=str(parsed.get("type") or ""),
            status=status,
            payment_id=str(payment.get("id") or parsed.get("event_id") or ""),
            patient_id=meta["patient_id"],
            product_code=meta["product_code"],
            reorder_reference=meta["reorder_reference"],
            amount=_to_amount(amount),
            completed=status == self.completed_status,
        )


class GmoAdapter(BasePaymentAdapter):
    """
    GMO PG 结果通知（application/x-www-form-urlencoded）
    CheckString = sha256hex(ShopID + OrderID + Status + Amount + AccessID + ShopPass)
    元数据在 ClientField1：PID:..;Product:..;Mode:..;Reorder:..
    """

    gateway_id = "gmo"
    completed_statuses = ("CAPTURE", "SALES")

    _CLIENT_FIELD_KEYS = {
        "PID": "patient_id",
        "Product": "product_code",
        "Mode": "mode",
        "Reorder": "reorder_reference",
    }

    def verify(self, raw, headers):
        if not self.secret:
            return True
        params = self.parse(raw)
        check_string = params.get("CheckString", "")
        # 旧格式通知没有 CheckString
        if not check_string:
            return True
        source = "".join(
            params.get(k, "") for k in ("ShopID", "OrderID", "Status", "Amount", "AccessID")
        ) + self.secret
        expected = hashlib.sha256(source.encode("utf-8")).hexdigest()
        return hmac.compare_digest(expected, check_string)

    def parse(self, raw):
        try:
            return dict(parse_qsl(_to_text(raw), keep_blank_values=True))
        except UnicodeDecodeError as e:
            raise ValidationError(
                message="Invalid form body",
                code="INVALID_FORM",
                detail={"error": str(e)},
            )

    def parse_client_field(self, field: str) -> dict:
        result = {}
        for part in (field or "").split(";"):
            key, sep, value = part.partition(":")
            if not sep or not key or not value:
                continue
            result[self._CLIENT_FIELD_KEYS.get(key, key)] = value
        return result

    def transform(self, parsed):
        status = parsed.get("Status", "")
        meta = self.parse_client_field(parsed.get("ClientField1", ""))
        return PaymentNotice(
            gateway=self.gateway_id,
            event_type=meta.get("mode", ""),
            status=status,
            payment_id=parsed.get("AccessID") or parsed.get("OrderID", ""),
            patient_id=meta.get("patient_id", ""),
            product_code=meta.get("product_code", ""),
            reorder_reference=meta.get("reorder_reference", ""),
            amount=_to_amount(parsed.get("Amount")),
            completed=status in self.completed_statuses,
        )


def _header(headers: Mapping[str, str], name: str) -> str:
    for key, value in headers.items():
        if key.lower() == name:
            return value or ""
    return ""
