#!/usr/bin/env python3
"""启动批改服务

用法:
  python run.py                 # 使用 HOST / PORT 环境变量（默认 0.0.0.0:3002）
  python run.py --port 3003     # 覆盖端口
  python run.py --reload        # 开发模式
"""

from grading_agent.launcher import main

if __name__ == "__main__":
    main()
