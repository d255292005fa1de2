"""Prompt 构建

识别与判分使用的全部提示词。题号格式约定：数字题号用数字，小题号和中文题号用字符串。
"""

from typing import Iterable, List, Optional

from grading_agent.models.answer import AnswerRecognitionResponse
from grading_agent.models.region import QuestionScore


def build_blank_sheet_prompt() -> str:
    """空白答题卡识别：选择题区域（合并为一个）+ 每题分值"""
    return """请分析这张空白答题卡图片，识别出选择题区域和每道题的分数：

**任务说明**：
1. **选择题区域**（choice）：识别所有选择题，合并为一个区域。如果没有选择题，regions 数组为空。
2. **分数信息**（scores）：识别试卷上所有题目的题号和分值，包括选择题、大题、小题、填空题等。

**格式要求**：
- 坐标必须是百分比形式（0-100），字段名：x_min_percent, y_min_percent, x_max_percent, y_max_percent
- 题号保持原样（数字、中文、小题号等）
- 必须直接返回有效的 JSON 格式，不要使用 markdown 代码块

JSON 格式示例：
{
  "regions": [
    {
      "type": "choice",
      "x_min_percent": 5.0,
      "y_min_percent": 10.0,
      "x_max_percent": 95.0,
      "y_max_percent": 35.0
    }
  ],
  "scores": [
    {"questionNumber": 1, "score": 2},
    {"questionNumber": 2, "score": 2},
    {"questionNumber": "4(1)", "score": 3},
    {"questionNumber": "4(2)", "score": 2},
    {"questionNumber": "18(1)①", "score": 2},
    {"questionNumber": "18(1)②", "score": 2}
  ]
}

请直接返回 JSON，不要包含其他文字说明。"""


_COMBINED_EXAMPLE = """{
  "regions": [
    {
      "type": "choice",
      "x_min_percent": 5.0,
      "y_min_percent": 10.0,
      "x_max_percent": 95.0,
      "y_max_percent": 35.0
    }
  ],
  "scores": [
    {"questionNumber": 1, "score": 3},
    {"questionNumber": 2, "score": 3},
    {"questionNumber": 13, "score": 2},
    {"questionNumber": "13(1)", "score": 1},
    {"questionNumber": "13(2)", "score": 1},
    {"questionNumber": 21, "score": 8},
    {"questionNumber": "21(1)", "score": 4},
    {"questionNumber": "21(2)", "score": 4},
    {"questionNumber": "六", "score": 10},
    {"questionNumber": "作文", "score": 20}
  ],
  "answers": {
    "regions": [
      {
        "type": "choice",
        "region": {
          "type": "choice",
          "x_min_percent": 5.0,
          "y_min_percent": 10.0,
          "x_max_percent": 95.0,
          "y_max_percent": 35.0
        },
        "questions": [
          {"question_number": 1, "answer": "A"},
          {"question_number": 2, "answer": "B"},
          {"question_number": 3, "answer": "C"}
        ]
      },
      {
        "type": "essay",
        "region": {
          "type": "essay",
          "x_min_percent": 0,
          "y_min_percent": 0,
          "x_max_percent": 100,
          "y_max_percent": 100
        },
        "questions": [
          {"question_number": 13, "answer": "1.20 -8 398"},
          {"question_number": "13(1)", "answer": "1.20"},
          {"question_number": "13(2)", "answer": "-8 398"},
          {"question_number": 21, "answer": "(1)120 (2)0.5h (3)120km"},
          {"question_number": "21(1)", "answer": "120"},
          {"question_number": "21(2)", "answer": "0.5h"},
          {"question_number": "21(3)", "answer": "120km"},
          {"question_number": "六", "answer": "示例答案内容"},
          {"question_number": "作文", "answer": "示例作文答案内容"}
        ]
      }
    ]
  }
}"""


def build_combined_prompt(blank_sheet_count: int, answer_image_count: int) -> str:
    """统一识别：空白答题卡在前、答案图片在后，一次返回区域、分值和标准答案

    分值与标准答案以空白答题卡为准，答案图片只作补充参考。
    """
    if blank_sheet_count == 1:
        blank_sheet_text = "第一张图片是空白答题卡"
    else:
        blank_sheet_text = f"前{blank_sheet_count}张图片是空白答题卡"
    if answer_image_count == 1:
        answer_text = "最后一张图片是答案图片"
    else:
        answer_text = f"后面{answer_image_count}张图片是答案图片"

    return f"""分析这些图片，识别以下内容：

**图片说明**：
- {blank_sheet_text}，用于识别答题区域、题目分数和标准答案（**主要来源，优先使用**）
- {answer_text}，标准答案供参考（**补充参考，仅在空白答题卡信息不完整时参考**）

**任务要求**（重要：所有要求都必须完成）：
1. **选择题区域**（regions）：**必须识别**。从空白答题卡识别所有选择题，合并为一个区域。如果试卷中有选择题（如第1-12题），regions 数组**不能为空**，必须包含选择题区域。只有在试卷完全没有选择题的情况下，regions 数组才为空。
2. **每题分数**（scores）：**必须从空白答题卡识别所有题目的分数**，包括：
   - **必须以空白答题卡为准**：识别空白答题卡上所有题目的题号和分值，这是分数的唯一来源
   - **答案图片不用于识别分数**：答案图片仅用于标准答案的参考，不要从答案图片识别分数
   - 包括所有题目类型：
     - 选择题：如 1, 2, 3 等
     - 大题：如 13, 14, 21, 22 等
     - **小题**：如 "13(1)", "13(2)", "21(1)", "21(2)" 等格式（注意：小题题号必须使用字符串格式，如 "13(1)"）
     - **中文题号**：如 "六", "第一题" 等（注意：中文题号必须使用字符串格式，保持原样）
   - **重要**：
     - 分数识别**必须以空白答题卡为准**，不要从答案图片识别分数
     - 必须识别空白答题卡上的所有题目分数，不能遗漏任何题目
     - 如果空白答题卡上某个题目没有标注分数，可以标记为 0 或根据题目类型推断
3. **标准答案**（answers）：**必须返回，不能为空**。**优先从空白答题卡识别所有题目的标准答案**，答案图片仅作为参考。需要识别**答题卡上所有题目**的标准答案，包括：
   - 选择题：识别选项（A、B、C、D等）
   - 填空题：识别填空内容
   - 解答题：识别解答内容
   - **小题**：必须识别所有小题的标准答案，题号格式如 "13(1)", "13(2)" 等
   - **中文题号题目**：必须识别所有中文题号题目的标准答案，如 "六", "作文" 等
   - **重要**：如果答题卡上有题目但答案图片上没有对应答案，**必须从空白答题卡识别**，确保识别完整，不遗漏任何题目

**格式要求**：
- 坐标必须是百分比形式（0-100），字段名：x_min_percent, y_min_percent, x_max_percent, y_max_percent
- 题号格式：
  - **数字题号**：使用数字类型，如 1, 2, 13, 21
  - **小题题号**：必须使用字符串格式，如 "13(1)", "13(2)", "21(1)", "21(2)"
  - **中文题号**：必须使用字符串格式，保持原样，如 "六", "第一题"（不要转换为数字）
- answers 字段**必须返回**，包含所有题目的标准答案

**JSON 格式示例**：
{_COMBINED_EXAMPLE}

**重要提醒**：
- 如果试卷有选择题，regions 数组**不能为空**
- answers 字段**必须返回**，不能省略
- **分数识别必须以空白答题卡为准**：所有题目的分数必须从空白答题卡识别，不要从答案图片识别分数
- 标准答案**优先从空白答题卡识别**，答案图片仅作为参考
- 小题题号必须使用字符串格式，如 "13(1)", "13(2)"
- 中文题号必须使用字符串格式，保持原样，如 "六", "第一题"（不要转换为数字）

请直接返回 JSON，不要包含其他文字说明。"""


def build_choice_region_prompt() -> str:
    """裁剪后的选择题区域识别"""
    return """请识别这张图片中的所有选择题答案。

要求：
1. 识别每道题选择的选项（A、B、C、D等）
2. 如果题目没有选择答案，返回空字符串或"未作答"
3. 返回 JSON 格式，包含所有题目的答案

JSON 格式：
```json
{
  "questions": [
    {
      "question_number": 1,
      "answer": "A"
    },
    {
      "question_number": 2,
      "answer": "B"
    }
  ]
}
```

请直接返回 JSON，不要包含其他文字说明。"""


_ESSAY_ONLY_EXAMPLE = """```json
{
  "questions": [
    {
      "question_number": 5,
      "type": "essay",
      "answer": "解答内容..."
    },
    {
      "question_number": 6,
      "type": "essay",
      "answer": "另一个解答内容..."
    }
  ]
}
```"""

_ALL_TYPES_EXAMPLE = """```json
{
  "questions": [
    {
      "question_number": 1,
      "type": "choice",
      "answer": "A"
    },
    {
      "question_number": 2,
      "type": "choice",
      "answer": "B"
    },
    {
      "question_number": 3,
      "type": "essay",
      "answer": "解答内容..."
    }
  ]
}
```"""


def build_full_image_prompt(exclude_choice: bool = False) -> str:
    """整图答案识别

    Args:
        exclude_choice: 为 True 时只识别解答题（学生答卷，选择题由裁剪识别负责）；
            否则识别标准答案图片中的全部题目
    """
    if exclude_choice:
        return f"""请识别这张学生答题卡图片中的解答题答案（不包括选择题）。

要求：
1. **只识别解答题**：忽略所有选择题区域，只识别解答题的答案内容
2. 识别每道解答题的解答文字内容
3. 如果题目没有解答，返回空字符串或"未作答"
4. 不需要关注题目在图片中的位置区域，只需要识别每道解答题的答案内容
5. 返回 JSON 格式，包含所有解答题的答案

JSON 格式：
{_ESSAY_ONLY_EXAMPLE}

请直接返回 JSON，不要包含其他文字说明。"""

    return f"""请识别这张标准答案图片中每道题的答案。

要求：
1. 识别所有题目的答案，包括选择题和解答题
2. **选择题**：识别选择的选项（A、B、C、D等）
3. **解答题**：识别解答的文字内容
4. 不需要关注题目在图片中的位置区域，只需要识别每道题的答案内容
5. 返回 JSON 格式，包含所有题目的答案

JSON 格式：
{_ALL_TYPES_EXAMPLE}

请直接返回 JSON，不要包含其他文字说明。"""


def build_batch_image_prompt(image_count: int, exclude_choice: bool = False) -> str:
    """多图答案识别，所有图片的结果合并为一个"""
    count_text = f"（共 {image_count} 张图片）" if image_count > 1 else ""

    if exclude_choice:
        return f"""请识别这些学生答题卡图片中的解答题答案（不包括选择题）{count_text}。

要求：
1. **只识别解答题**：忽略所有选择题区域，只识别解答题的答案内容
2. **合并所有图片**：将所有图片中的解答题答案合并到一个结果中
3. 识别每道解答题的解答文字内容
4. 如果题目没有解答，返回空字符串或"未作答"
5. 不需要关注题目在图片中的位置区域，只需要识别每道解答题的答案内容
6. 返回 JSON 格式，包含所有图片中的所有解答题答案（合并为一个结果）

JSON 格式：
{_ESSAY_ONLY_EXAMPLE}

请直接返回 JSON 对象，不要包含其他文字说明。"""

    return f"""这些图片是标准答案图片{count_text}，请识别所有图片中每道题的标准答案。

要求：
1. **合并所有图片**：将所有图片中的题目答案合并到一个结果中
2. 识别所有题目的标准答案，包括选择题和解答题
3. **选择题**：识别标准答案的选项（A、B、C、D等）
4. **解答题**：识别标准答案的文字内容
5. 不需要关注题目在图片中的位置区域，只需要识别每道题的标准答案内容
6. 返回 JSON 格式，包含所有图片中的所有题目答案（合并为一个结果）

JSON 格式：
{_ALL_TYPES_EXAMPLE}

请直接返回 JSON 对象，不要包含其他文字说明。"""


def format_answers(answers: AnswerRecognitionResponse, label: str) -> str:
    """按题型分组格式化答案"""
    lines: List[str] = [f"{label}："]
    for region in answers.regions:
        lines.append(f"\n【{'选择题' if region.type == 'choice' else '解答题'}】")
        for question in region.questions:
            lines.append(f"第 {question.question_number} 题：{question.answer}")
    return "\n".join(lines)


def format_max_scores(scores: Iterable[QuestionScore]) -> str:
    entries = list(scores)
    if not entries:
        return ""
    body = "\n".join(f"第 {s.question_number} 题：满分 {s.score} 分" for s in entries)
    return f"\n每道题的满分：\n{body}\n"


def build_score_calculation_prompt(
    student_answers: AnswerRecognitionResponse,
    standard_answers: AnswerRecognitionResponse,
    scores: Optional[Iterable[QuestionScore]] = None,
) -> str:
    """判分提示词：标准答案、学生答案与空白答题卡声明的满分"""
    standard_text = format_answers(standard_answers, "标准答案")
    student_text = format_answers(student_answers, "学生答案")
    scores_text = format_max_scores(scores or [])

    return f"""请根据标准答案中的得分点，对学生答案进行判分。

{standard_text}

{student_text}

{scores_text}

请仔细对比每道题的学生答案和标准答案，根据标准答案中的得分点和上述满分进行判分。

判分要求：
1. **选择题**：答案完全正确得满分，否则 0 分
2. **填空题**：答案完全正确得满分，否则 0 分（可以适当考虑同义词或相近答案）
3. **解答题**：根据标准答案中的得分点，按点给分。如果学生答案包含了某个得分点，给予相应分数；如果缺少关键步骤或答案不完整，扣除相应分数
4. **重要**：每道题的 max_score 必须与上述满分一致

请返回 JSON 格式，包含每道题的得分：
```json
{{
  "questions": [
    {{
      "question_number": 1,
      "type": "choice",
      "score": 5,
      "max_score": 5,
      "reason": "答案完全正确"
    }},
    {{
      "question_number": 2,
      "type": "essay",
      "score": 8,
      "max_score": 10,
      "reason": "答对了部分得分点，缺少关键步骤"
    }}
  ]
}}
```

请直接返回 JSON，不要包含其他文字说明。"""
