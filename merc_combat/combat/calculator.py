import random
from typing import Callable, List, Sequence

from ..config import Config
from ..models import BehaviorFlag, Combatant, DamageRecord, Side


class CombatCalculator:
    """战斗计算核心 (骰子、命中、伤害、先手排序)"""

    @staticmethod
    def roll_dice(rng: random.Random, count: int) -> List[int]:
        """从游戏随机源掷 count 枚六面骰"""
        return [rng.randint(1, Config.DICE_SIDES) for _ in range(max(0, count))]

    @staticmethod
    def is_hit(roll: int, threshold: int = Config.HIT_THRESHOLD) -> bool:
        return roll >= threshold

    @staticmethod
    def count_hits(rolls: Sequence[int], threshold: int = Config.HIT_THRESHOLD) -> int:
        return sum(1 for r in rolls if r >= threshold)

    @staticmethod
    def hit_probability(threshold: int = Config.HIT_THRESHOLD) -> float:
        """单枚骰子的命中概率"""
        faces = Config.DICE_SIDES - threshold + 1
        return max(0, min(Config.DICE_SIDES, faces)) / Config.DICE_SIDES

    @classmethod
    def expected_hits(cls, dice: int, threshold: int = Config.HIT_THRESHOLD) -> float:
        return dice * cls.hit_probability(threshold)

    @staticmethod
    def hits_to_kill(target: Combatant, armor_piercing: bool = False) -> int:
        """击杀目标所需命中数"""
        if target.is_militia:
            return 1
        return max(0, target.health) + (0 if armor_piercing else target.armor)

    @staticmethod
    def apply_damage(target: Combatant, hits: int, armor_piercing: bool = False) -> DamageRecord:
        """
        对目标施加 hits 点伤害

        护甲先吸收，每点护甲最多吸收一次命中；护甲耗尽后剩余命中扣减生命值。
        穿甲武器直接扣减生命值。

        Args:
            target: 目标快照 (会被修改)
            hits: 命中数
            armor_piercing: 是否无视护甲

        Returns:
            本次伤害记录
        """
        hits = max(0, hits)
        absorbed = 0 if armor_piercing else min(target.armor, hits)
        target.armor -= absorbed
        health_damage = min(target.health, hits - absorbed)
        target.health -= health_damage
        return DamageRecord(target_id=target.id, armor_damage=absorbed, health_damage=health_damage)

    @staticmethod
    def sort_by_initiative(
        units: Sequence[Combatant],
        initiative_of: Callable[[Combatant], int],
        has_flag: Callable[[Combatant, BehaviorFlag], bool]
    ) -> List[Combatant]:
        """按先手值降序排列行动顺序。

        排序规则:
        1. 先手值高者先行动
        2. 先手值相同时独裁者一方先行动
        3. 仍相同时保持装配顺序
        4. "总是第一个行动" 的单位整体提到最前 (组内保持上述顺序)
        5. "总在民兵之前行动" 的单位若排在第一个民兵之后，移到第一个民兵之前

        Args:
            units: 参与排序的单位
            initiative_of: 计算单位最终先手值的函数
            has_flag: 查询单位布尔能力的函数

        Returns:
            行动顺序列表
        """
        indexed = list(enumerate(units))
        ordered = [
            u for _, u in sorted(
                indexed,
                key=lambda pair: (
                    -initiative_of(pair[1]),
                    0 if pair[1].side == Side.DICTATOR else 1,
                    pair[0],
                )
            )
        ]

        first = [u for u in ordered if has_flag(u, BehaviorFlag.ALWAYS_FIRST)]
        first_ids = {u.id for u in first}
        rest = [u for u in ordered if u.id not in first_ids]

        militia_positions = [i for i, u in enumerate(rest) if u.is_militia]
        if militia_positions:
            first_militia = militia_positions[0]
            late = [
                u for u in rest[first_militia:]
                if not u.is_militia and has_flag(u, BehaviorFlag.ALWAYS_BEFORE_MILITIA)
            ]
            if late:
                late_ids = {u.id for u in late}
                rest = [u for u in rest if u.id not in late_ids]
                rest[first_militia:first_militia] = late

        return first + rest
