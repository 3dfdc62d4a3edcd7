# memeflow/workflows/definitions/__init__.py
# Workflow 定义模块
#
# Workflow 代码必须是确定性的，意味着：
# - 不能使用随机数（用 workflow.uuid4() / workflow.random()）
# - 不能直接获取当前时间（用 workflow.now()）
# - 不能直接做 I/O 操作（用 Activity）
# - 不能使用全局可变状态

from memeflow.workflows.definitions.meme_generator import MemeGeneratorWorkflow

__all__ = [
    "MemeGeneratorWorkflow",
]
