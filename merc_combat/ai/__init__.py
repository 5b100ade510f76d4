"""
ai 包初始化文件
AI 决策辅助函数 (战斗时与地图层)
"""

from . import combat_helpers, sector_helpers

__all__ = [
    'combat_helpers',
    'sector_helpers',
]
