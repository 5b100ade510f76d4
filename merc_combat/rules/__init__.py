"""
rules 包初始化文件
能力修正注册表与装备效果注册表
"""

from .abilities import AbilityRegistry
from .conditions import ConditionChecker
from .equipment import EquipmentEffectRegistry

__all__ = [
    'AbilityRegistry',
    'ConditionChecker',
    'EquipmentEffectRegistry',
]
