"""试卷识别与批改服务

基于视觉语言模型识别答题卡区域、分值与答案，对学生答卷批量判分，
并通过 webhook 回调返回结果。
"""

__version__ = "1.0.0"
