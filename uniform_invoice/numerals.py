"""Traditional Chinese capital numerals (國字大寫) for amounts on invoices.

Capital numerals are the tamper-resistant digit forms required on Taiwanese
financial documents: ``1234`` becomes ``壹仟貳佰參拾肆元``.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List

from .formatting import round_half_up

DIGITS = ("零", "壹", "貳", "參", "肆", "伍", "陸", "柒", "捌", "玖")
UNITS = ("", "拾", "佰", "仟")
GROUP_UNITS = ("", "萬", "億", "兆")
CURRENCY_UNIT = "元"
NEGATIVE_MARKER = "負"
ZERO_AMOUNT = DIGITS[0] + CURRENCY_UNIT

MAX_DIGITS = len(GROUP_UNITS) * len(UNITS)

# Box order of the "總計新臺幣(中文大寫)" row, most significant first.
POSITION_KEYS = ("yi", "qian_wan", "bai_wan", "shi_wan", "wan", "qian", "bai", "shi", "yuan")
POSITION_LABELS = ("億", "仟", "佰", "拾", "萬", "仟", "佰", "拾", "元")


def _rounded(amount: Any) -> int:
    # Round before the sign and zero checks so amounts that round to 0 read 零元, never a bare 負.
    if isinstance(amount, float) and not math.isfinite(amount):
        raise ValueError(f"Amount must be finite, got {amount!r}")
    return round_half_up(amount)


def to_capital_numerals(amount: Any) -> str:
    value = _rounded(amount)
    if value == 0:
        return ZERO_AMOUNT
    if value < 0:
        return NEGATIVE_MARKER + to_capital_numerals(-value)

    digits = str(value)
    if len(digits) > MAX_DIGITS:
        raise ValueError(f"Amount {value} exceeds the largest supported unit ({GROUP_UNITS[-1]})")

    parts: List[str] = []
    pending_zero = False
    group_has_digit = False
    for index, char in enumerate(digits):
        digit = int(char)
        position = len(digits) - index - 1
        unit_index = position % 4
        group_index = position // 4

        if digit == 0:
            pending_zero = True
        else:
            if pending_zero and parts:
                parts.append(DIGITS[0])
            pending_zero = False
            group_has_digit = True
            parts.append(DIGITS[digit] + UNITS[unit_index])

        if unit_index == 0:
            if group_index > 0 and group_has_digit:
                parts.append(GROUP_UNITS[group_index])
            group_has_digit = False

    return "".join(parts) + CURRENCY_UNIT


def to_positioned_digits(amount: Any) -> Dict[str, str]:
    """Split an amount into the nine capital-numeral boxes of the invoice form.

    Boxes above the leading digit stay empty; the 元 box is always filled.
    """
    value = abs(_rounded(amount))
    if value >= 10 ** len(POSITION_KEYS):
        raise ValueError(f"Amount {value} does not fit in {len(POSITION_KEYS)} boxes")

    padded = str(value).rjust(len(POSITION_KEYS), "0")
    boxes: Dict[str, str] = {}
    for index, key in enumerate(POSITION_KEYS):
        place = len(POSITION_KEYS) - index - 1
        if place == 0 or value >= 10**place:
            boxes[key] = DIGITS[int(padded[index])]
        else:
            boxes[key] = ""
    return boxes
