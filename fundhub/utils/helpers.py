"""
Common utility functions and helpers.
"""
from typing import Any
from datetime import date, datetime
import json


_DIGITS = ["", "일", "이", "삼", "사", "오", "육", "칠", "팔", "구"]
_GROUP_NAMES = ["", "만", "억", "조", "경"]


def convert_number_to_korean(num: int) -> str:
    """
    Spell out a non-negative integer in Korean number words.

    Args:
        num: Integer to convert (e.g. 123456)

    Returns:
        Korean reading, e.g. "십이만삼천사백오십육"
    """
    num = int(num)
    if num < 0:
        raise ValueError("Only non-negative numbers can be converted")
    if num == 0:
        return "영"

    groups = []
    while num > 0:
        groups.insert(0, num % 10000)
        num //= 10000

    result = ""
    for i, group in enumerate(groups):
        group_index = len(groups) - 1 - i
        if group == 0:
            continue
        result += _four_digits_to_korean(group)
        if group_index > 0:
            result += _GROUP_NAMES[group_index]
    return result


def _four_digits_to_korean(num: int) -> str:
    thousands, rest = divmod(num, 1000)
    hundreds, rest = divmod(rest, 100)
    tens, ones = divmod(rest, 10)

    result = ""
    if thousands:
        result += _DIGITS[thousands] + "천"
    if hundreds:
        result += _DIGITS[hundreds] + "백"
    if tens:
        # 십, not 일십, for the tens place
        result += ("" if tens == 1 else _DIGITS[tens]) + "십"
    if ones:
        result += _DIGITS[ones]
    return result


def format_comma(num: Any) -> str:
    """Format a number with thousands separators ("1,000,000")."""
    if num is None or num == "":
        return ""
    return f"{int(num):,}"


def format_korean_date(value: Any) -> str:
    """Format a date (or ISO string) as 'YYYY년 M월 D일' without zero padding."""
    if not value:
        return ""
    if isinstance(value, str):
        value = date.fromisoformat(value[:10])
    return f"{value.year}년 {value.month}월 {value.day}일"


def to_jsonable(value: Any) -> Any:
    """Recursively convert dates and datetimes into ISO strings."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def canonical_json(value: Any) -> str:
    """Serialize with sorted keys and no whitespace so equal values compare equal."""
    return json.dumps(to_jsonable(value), sort_keys=True, ensure_ascii=False, separators=(",", ":"))

