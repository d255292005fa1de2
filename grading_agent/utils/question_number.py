"""题号规范化与排序

题号可能是整数（1, 13）、小题号（"13(1)", "18(1)①"）或中文题号（"六", "作文"）。
模型有时把整数题号返回为字符串，因此所有按题号查找、合并的地方都先经过
normalize_question_number，使 "1" 与 1 落到同一个键上。
"""

import re
from typing import Any, List, Optional, Tuple, Union

QuestionNumber = Union[int, str]

_DIGITS_ONLY = re.compile(r"^\d+$")
_CHUNK = re.compile(r"(\d+)")


def normalize_question_number(value: Any) -> Optional[QuestionNumber]:
    """将题号转换为规范形式

    - 整数保持不变
    - 整数值的浮点数（如 3.0）转为 int
    - 纯数字字符串（去除首尾空白后）转为 int
    - 其他字符串去除首尾空白

    Returns:
        规范化后的题号；无法表示为题号时返回 None
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        return str(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if _DIGITS_ONLY.match(text):
            return int(text)
        return text
    return None


def is_valid_question_number(value: Any) -> bool:
    """题号是否有效：正整数或非空字符串"""
    normalized = normalize_question_number(value)
    if normalized is None:
        return False
    if isinstance(normalized, int):
        return normalized > 0
    return True


def _natural_chunks(text: str) -> List[Tuple[int, int, str]]:
    chunks: List[Tuple[int, int, str]] = []
    for part in _CHUNK.split(text):
        if not part:
            continue
        if part.isdecimal():
            chunks.append((0, int(part), ""))
        else:
            chunks.append((1, 0, part))
    return chunks


def question_number_sort_key(value: Any) -> Tuple[List[Tuple[int, int, str]], str]:
    """题号排序键

    数字片段按数值比较，文本片段按字符比较，因此 2 < 13 < "13(1)" < "13(2)"。
    最后附加原始文本作为决胜项，保证任意两个不同题号都有确定的先后。
    """
    normalized = normalize_question_number(value)
    text = "" if normalized is None else str(normalized)
    return _natural_chunks(text), text


def compare_question_numbers(a: Any, b: Any) -> int:
    """比较两个题号，返回 -1 / 0 / 1"""
    key_a = question_number_sort_key(a)
    key_b = question_number_sort_key(b)
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0
