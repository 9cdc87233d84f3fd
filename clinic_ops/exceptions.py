"""
统一错误处理：BaseAppException 及子类
所有异常格式：type, code, message, detail, http_status
"""


class BaseAppException(Exception):
    """基类：统一错误格式"""
    type = "error"
    code = "UNKNOWN"
    message = "Unknown error"
    http_status = 400

    def __init__(self, message=None, code=None, detail=None, http_status=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.code = code or self.code
        self.detail = detail if detail is not None else {}
        if http_status is not None:
            self.http_status = http_status

    def to_dict(self):
        return {
            "success": False,
            "type": self.type,
            "code": self.code,
            "message": self.message,
            "detail": self.detail,
        }


class ValidationError(BaseAppException):
    """验证错误：输入格式不对（非数字 reorder id、缺少必填字段等），任何副作用之前拒绝"""
    type = "validation"
    code = "VALIDATION_ERROR"
    message = "Validation failed"
    http_status = 400


class AuthenticationError(BaseAppException):
    """未识别的患者 / 管理员"""
    type = "auth"
    code = "UNAUTHORIZED"
    message = "Unauthorized"
    http_status = 401


class BlockError(BaseAppException):
    """业务阻止：业务规则不允许"""
    type = "block"
    code = "BLOCK"
    message = "Operation blocked"
    http_status = 409


class BlockedError(BlockError):
    """临床闸门：问诊结果为 NG 的患者不能申请再处方"""
    code = "NG_PATIENT"
    message = "処方不可と判定されているため、再処方を申請できません。再度診察予約をお取りください。"
    http_status = 403


class DuplicateRequestError(BlockError):
    """已有 pending / confirmed 的再处方申请"""
    code = "DUPLICATE_PENDING"
    message = "すでに処理中の再処方申請があります。キャンセルまたは決済完了後に再度お申し込みください。"
    http_status = 409


class NotFoundError(BlockError):
    """记录不存在；归属不符也按不存在处理，不泄露他人记录"""
    code = "NOT_FOUND"
    message = "Not found"
    http_status = 404


class InvalidStateError(BlockError):
    """状态不允许该操作（例如已终结的申请再取消）"""
    code = "INVALID_STATE"
    message = "Invalid state for this operation"
    http_status = 409
