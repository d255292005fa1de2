"""题号规范化与排序单元测试"""

import pytest

from grading_agent.utils.question_number import (
    compare_question_numbers,
    is_valid_question_number,
    normalize_question_number,
    question_number_sort_key,
)


class TestNormalizeQuestionNumber:
    """测试题号规范化"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (1, 1),
            ("1", 1),
            (" 12 ", 12),
            (3.0, 3),
            ("13(1)", "13(1)"),
            ("  六 ", "六"),
            ("作文", "作文"),
        ],
    )
    def test_normalize(self, value, expected):
        assert normalize_question_number(value) == expected

    @pytest.mark.parametrize("value", [None, True, False, "", "   ", [1], {"n": 1}])
    def test_unrepresentable(self, value):
        assert normalize_question_number(value) is None

    def test_numeric_string_and_int_share_key(self):
        lookup = {normalize_question_number(1): "A"}
        assert lookup[normalize_question_number("1")] == "A"


class TestIsValidQuestionNumber:
    """测试题号有效性"""

    @pytest.mark.parametrize("value", [1, 99, "1", "13(1)", "六"])
    def test_valid(self, value):
        assert is_valid_question_number(value) is True

    @pytest.mark.parametrize("value", [0, -3, "0", "", " ", None, True])
    def test_invalid(self, value):
        assert is_valid_question_number(value) is False


class TestQuestionNumberOrdering:
    """测试题号排序"""

    def test_numeric_order(self):
        assert sorted([13, 2, 1], key=question_number_sort_key) == [1, 2, 13]

    def test_mixed_order(self):
        values = ["13(2)", 13, "13(1)", 2, "18(1)①"]
        assert sorted(values, key=question_number_sort_key) == [2, 13, "13(1)", "13(2)", "18(1)①"]

    def test_numeric_before_text(self):
        assert compare_question_numbers(5, "六") == -1
        assert compare_question_numbers("六", 5) == 1

    def test_string_digits_equal_int(self):
        assert compare_question_numbers("3", 3) == 0

    def test_antisymmetric(self):
        assert compare_question_numbers("13(1)", "13(2)") == -compare_question_numbers("13(2)", "13(1)")
