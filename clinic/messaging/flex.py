"""
LINE 消息体构造（flex / text）
"""
from clinic.dose import format_product_code


def text_message(text):
    return {"type": "text", "text": text}


def _text(text, **kwargs):
    node = {"type": "text", "text": text, "wrap": True}
    node.update(kwargs)
    return node


def reorder_request_flex(reorder_id, patient_id, patient_name, product_code, reorder_number, history):
    """
    管理员群用：再处方申请卡片，带 承認 / 却下 postback 按钮
    """
    product_label = format_product_code(product_code)
    return {
        "type": "flex",
        "altText": f"【再処方申請】{patient_name}",
        "contents": {
            "type": "bubble",
            "header": {
                "type": "box",
                "layout": "vertical",
                "contents": [
                    _text("再処方申請", weight="bold", size="lg", color="#1DB446"),
                ],
                "backgroundColor": "#F0FFF0",
            },
            "body": {
                "type": "box",
                "layout": "vertical",
                "contents": [
                    _text(f"氏名: {patient_name}", size="md", weight="bold"),
                    _text(f"患者ID: {patient_id}", size="sm", color="#666666", margin="sm"),
                    _text(f"申請: {product_label}", size="md", margin="md"),
                    {"type": "separator", "margin": "md"},
                    _text("過去の処方歴:", size="sm", color="#666666", margin="md"),
                    _text(history or "なし", size="sm", margin="sm"),
                    _text(f"申請番号: {reorder_number}", size="xs", color="#999999", margin="md"),
                ],
            },
            "footer": {
                "type": "box",
                "layout": "horizontal",
                "spacing": "sm",
                "contents": [
                    {
                        "type": "button",
                        "style": "primary",
                        "color": "#1DB446",
                        "action": {
                            "type": "postback",
                            "label": "承認",
                            "data": f"reorder_action=approve&reorder_id={reorder_id}",
                        },
                    },
                    {
                        "type": "button",
                        "style": "secondary",
                        "action": {
                            "type": "postback",
                            "label": "却下",
                            "data": f"reorder_action=reject&reorder_id={reorder_id}",
                        },
                    },
                ],
            },
        },
    }


def format_history(orders):
    """最近的处方历史：每行 '<发货日> <剂量 期间>'"""
    lines = []
    for order in orders:
        product = (order.product_code or "").replace("MJL_", "", 1).replace("_", " ", 1)
        date = order.shipping_date.isoformat() if order.shipping_date else ""
        lines.append(f"{date} {product}".strip())
    return "\n".join(lines)


def first_dose_warning_text(patient_id, dose_label):
    return (
        f"⚠️【{dose_label} 初回申請】⚠️\n"
        f"患者ID: {patient_id}\n\n"
        f"この患者は{dose_label}の処方歴がありません。\n"
        "承認前にご確認ください。"
    )


def approval_text(product_code):
    return (
        "再処方の申請が承認されました。\n"
        f"商品: {format_product_code(product_code)}\n"
        "マイページから決済をお願いいたします。"
    )


def rejection_text(product_code, reason=""):
    lines = [
        "再処方の申請について、今回は処方を見送らせていただきました。",
        f"商品: {format_product_code(product_code)}",
    ]
    if reason:
        lines.append(f"理由: {reason}")
    lines.append("ご不明な点はトークにてお問い合わせください。")
    return "\n".join(lines)


def cancellation_text(patient_id, reorder_number):
    return f"【再処方キャンセル】\n患者ID: {patient_id}\n申請ID: {reorder_number}"
