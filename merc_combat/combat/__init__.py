"""
combat 包初始化文件
战斗回合引擎及其计算、目标选择、撤退与回写组件
"""

from .calculator import CombatCalculator
from .events import CombatEventLog
from .engine import CombatEngine, execute_combat
from .retreat import RetreatEvaluator
from .targeting import TargetSelector

__all__ = [
    'CombatCalculator',
    'CombatEventLog',
    'CombatEngine',
    'execute_combat',
    'RetreatEvaluator',
    'TargetSelector',
]
