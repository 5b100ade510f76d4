"""
战斗异常体系

- CombatSetupError: 装配阶段失败，任何回合执行之前抛出，不修改任何状态
- CombatStateError: 不变量被破坏，当前战斗实例不可继续
- DecisionError: 决策点输入非法，同一决策点会被重新提供
"""


class CombatError(Exception):
    """战斗系统异常基类"""


class CombatSetupError(CombatError):
    """战斗装配失败"""


class EmptySideError(CombatSetupError):
    """某一方没有可参战单位"""

    def __init__(self, side: str, sector_id: str) -> None:
        super().__init__(f"区域 {sector_id} 中 {side} 方没有可参战单位")
        self.side = side
        self.sector_id = sector_id


class CombatStateError(CombatError):
    """战斗状态不变量被破坏 (负生命值、未知属性等)"""


class DecisionError(CombatError):
    """决策被拒绝，reason 为面向玩家的原因描述"""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class InvalidRetreatError(DecisionError):
    """撤退目标非法或单位不满足撤退条件"""


class AlreadyRetreatedError(DecisionError):
    """同一单位重复撤退"""


class ItemNotCarriedError(DecisionError):
    """使用了单位未携带的物品"""


class InvalidTargetError(DecisionError):
    """选择了非法的攻击目标"""
