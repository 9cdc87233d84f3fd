"""
Prometheus 指标定义
"""
from prometheus_client import Counter, Gauge, Histogram

# 业务指标
REORDER_APPLIED = Counter(
    "reorder_applied_total",
    "创建成功的再处方申请数",
)
REORDER_GATE_REJECTED = Counter(
    "reorder_gate_rejected_total",
    "被问诊闸门 / 重复申请拦下的次数",
    ["code"],
)
REORDER_DECISION = Counter(
    "reorder_decision_total",
    "承认 / 却下 的处理结果",
    ["decision", "outcome"],
)
REORDER_CANCELED = Counter(
    "reorder_canceled_total",
    "患者取消的再处方数",
)
REORDER_PAID = Counter(
    "reorder_paid_total",
    "webhook 更新为 paid 的再处方数",
)
PAYMENT_WEBHOOK = Counter(
    "payment_webhook_total",
    "支付网关通知处理结果",
    ["gateway", "result"],
)
MENU_RULE_EVALUATION = Counter(
    "menu_rule_evaluation_total",
    "菜单自动切换规则评估次数",
    ["matched"],
)
SIDE_EFFECT_FAILURE = Counter(
    "side_effect_failure_total",
    "提交后副作用（通知 / 审计 / 缓存 / 菜单）失败次数",
    ["hook"],
)

# 性能指标（Histogram 自动提供 _count, _sum, _bucket）
API_APPLY_DURATION = Histogram(
    "api_reorder_apply_duration_seconds",
    "POST /api/reorder/apply/ 响应时间",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0),
)
API_DECISION_DURATION = Histogram(
    "api_reorder_decision_duration_seconds",
    "POST /api/admin/reorders/approve|reject/ 响应时间",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0),
)
API_WEBHOOK_DURATION = Histogram(
    "api_payment_webhook_duration_seconds",
    "POST /api/payments/<gateway>/webhook/ 响应时间",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

# 错误指标
HTTP_5XX = Counter("http_5xx_total", "5xx 错误数")
HTTP_4XX = Counter("http_4xx_total", "4xx 错误数", ["code"])
VALIDATION_ERROR = Counter("validation_error_total", "数据格式校验失败次数")
BLOCK_ERROR = Counter("block_error_total", "Block 错误次数", ["code"])

# 抓取时由 /metrics 刷新
OPEN_REORDERS = Gauge(
    "reorder_open",
    "未处理（pending / confirmed）的再处方申请数",
    ["status"],
)
