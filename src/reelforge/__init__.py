"""Reelforge: AI 分镜视频生成向导的后端服务。"""

__version__ = "0.3.0"
