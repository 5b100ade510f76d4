"""
MERC 战斗结算引擎
"""

# 引擎必须先于 ai 包导入 (ai 依赖 combat 子模块)
from .combat import CombatEngine, execute_combat
from .config import Config
from .errors import (
    AlreadyRetreatedError, CombatError, CombatSetupError, CombatStateError,
    DecisionError, EmptySideError, InvalidRetreatError, InvalidTargetError, ItemNotCarriedError
)
from .factory import CombatantAssembler
from .loader import DataLoader
from .models import CombatOutcome, CombatPhase, ControlMode, DecisionKind, Side
from .rules import AbilityRegistry, EquipmentEffectRegistry
from . import ai

__version__ = "0.1.0"

__all__ = [
    'AbilityRegistry',
    'AlreadyRetreatedError',
    'CombatantAssembler',
    'CombatEngine',
    'CombatError',
    'CombatOutcome',
    'CombatPhase',
    'CombatSetupError',
    'CombatStateError',
    'Config',
    'ControlMode',
    'DataLoader',
    'DecisionError',
    'DecisionKind',
    'EmptySideError',
    'EquipmentEffectRegistry',
    'InvalidRetreatError',
    'InvalidTargetError',
    'ItemNotCarriedError',
    'Side',
    'ai',
    'execute_combat',
]
