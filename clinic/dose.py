"""
商品代码解析：<PREFIX>_<DOSE>mg_<DURATION>，例如 MJL_7.5mg_3m
"""
import re

# 数字（可带一位以上小数）紧跟 mg；MJL_10_3m 这种没有 mg 的不算
DOSE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)mg")

# 诊所使用的剂量阶梯（mg），用来判断"相邻档"
DOSE_LADDER = (2.5, 5.0, 7.5, 10.0, 12.5, 15.0)

_PRODUCT_PREFIX_LABELS = {
    "MJL_": "マンジャロ ",
}
_DURATION_LABELS = (
    ("1m", "1ヶ月"),
    ("2m", "2ヶ月"),
    ("3m", "3ヶ月"),
)


def extract_dose(code):
    """返回 mg 数值（float）；找不到返回 None，不抛异常"""
    if not code:
        return None
    m = DOSE_PATTERN.search(str(code))
    if not m:
        return None
    return float(m.group(1))


def adjacent_doses(dose):
    """同档 + 阶梯上相邻的档；不在阶梯上的剂量只返回自己"""
    if dose is None:
        return ()
    if dose not in DOSE_LADDER:
        return (dose,)
    idx = DOSE_LADDER.index(dose)
    return DOSE_LADDER[max(idx - 1, 0):idx + 2]


def is_first_dose_tier(code, threshold):
    """商品剂量是否正好是需要首次确认的那一档"""
    dose = extract_dose(code)
    return dose is not None and threshold is not None and dose == float(threshold)


def format_product_code(code):
    """MJL_5mg_1m → マンジャロ 5mg 1ヶ月"""
    label = code or ""
    for prefix, name in _PRODUCT_PREFIX_LABELS.items():
        label = label.replace(prefix, name, 1)
    label = label.replace("_", " ", 1)
    for short, long in _DURATION_LABELS:
        label = label.replace(short, long)
    return label


def format_dose(dose):
    if dose is None:
        return "-"
    return f"{dose:g}mg"


def build_karte_note(product_code, prev_dose, current_dose):
    """
    再处方病历（三行）：
    再処方希望 / 商品: ... / 剂量变化说明
    任一剂量未知时按"继续使用"处理
    """
    if prev_dose is not None and current_dose is not None and prev_dose < current_dose:
        reason = "副作用がなく、効果を感じづらくなり増量処方"
    elif prev_dose is not None and current_dose is not None and prev_dose > current_dose:
        reason = "副作用がなく、効果も十分にあったため減量処方"
    else:
        reason = "副作用がなく、継続使用のため処方"
    return "\n".join([
        "再処方希望",
        f"商品: {format_product_code(product_code)}",
        reason,
    ])
