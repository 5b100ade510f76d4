"""
撤退判定
负责计算合法撤退区域并执行撤退 (移动小队)
"""

import logging
from typing import Iterable, List, MutableSet, Optional

from ..errors import AlreadyRetreatedError, InvalidRetreatError
from ..models import Combatant, Side
from ..world import Game, RebelPlayer, Sector, Squad

logger = logging.getLogger(__name__)


class RetreatEvaluator:
    """撤退判定器"""

    @staticmethod
    def _is_supported(game: Game, adjacent: Sector, side: Side, player: Optional[RebelPlayer]) -> bool:
        """相邻区域对撤退方是否安全: 没有敌军，或己方单位数多于敌军"""
        if side == Side.REBEL:
            if not game.has_dictator_forces(adjacent):
                return True
            enemy = game.dictator_unit_count(adjacent)
            if player is not None and game.rebel_unit_count(adjacent, player) > enemy:
                return True
            return game.rebel_unit_count(adjacent) > enemy
        if not game.has_rebel_forces(adjacent):
            return True
        return game.dictator_unit_count(adjacent) > game.rebel_unit_count(adjacent)

    @classmethod
    def get_valid_retreat_sectors(
        cls,
        game: Game,
        sector: Sector,
        side: Side,
        player: RebelPlayer | None = None
    ) -> List[Sector]:
        """
        合法撤退区域: 正交相邻、未处于其他战斗中，且没有敌军或己方占优

        Args:
            game: 游戏状态
            sector: 当前战斗区域
            side: 撤退方阵营
            player: 撤退的反抗军玩家 (其单位数也计入支援)

        Returns:
            按地图顺序排列的合法区域
        """
        return [
            adjacent for adjacent in game.adjacent_sectors(sector)
            if adjacent.id not in game.combat_locked
            and cls._is_supported(game, adjacent, side, player)
        ]

    @staticmethod
    def _squads(game: Game, sector: Sector, side: Side, player: Optional[RebelPlayer]) -> List[Squad]:
        if side == Side.REBEL:
            return game.rebel_squads_in(sector, player)
        squad = game.dictator.squad
        return [squad] if squad is not None and squad.sector_id == sector.id else []

    @classmethod
    def can_retreat(
        cls,
        game: Game,
        sector: Sector,
        side: Side,
        player: RebelPlayer | None = None
    ) -> bool:
        """存在存活佣兵且至少有一个合法撤退区域"""
        if not any(squad.living_mercs for squad in cls._squads(game, sector, side, player)):
            return False
        return bool(cls.get_valid_retreat_sectors(game, sector, side, player))

    @classmethod
    def execute_retreat(
        cls,
        game: Game,
        sector: Sector,
        destination: Sector,
        side: Side,
        player: RebelPlayer | None = None,
        *,
        retreated: MutableSet[str],
        combatants: Iterable[Combatant] = ()
    ) -> List[str]:
        """
        执行撤退: 把该方位于战斗区域的小队移动到目标区域

        Args:
            game: 游戏状态
            sector: 战斗区域
            destination: 撤退目标
            side: 撤退方阵营
            player: 撤退的反抗军玩家，None 表示该阵营全部小队
            retreated: 本场战斗已撤退的单位 id (会被更新)
            combatants: 战斗快照，撤退单位的快照会被标记为已撤退

        Returns:
            撤退的佣兵 id 列表

        Raises:
            AlreadyRetreatedError: 该方单位本场战斗已经撤退过
            InvalidRetreatError: 不满足撤退条件或目标区域非法
        """
        squads = cls._squads(game, sector, side, player)
        if not squads:
            if player is not None:
                owned = player.mercs
            elif side == Side.DICTATOR and game.dictator.squad is not None:
                owned = game.dictator.squad.mercs
            else:
                owned = [m for p in game.rebels for m in p.mercs]
            if any(m.id in retreated for m in owned):
                raise AlreadyRetreatedError("这些单位已经撤退")
            raise InvalidRetreatError("该区域中没有可撤退的小队")

        merc_ids = [m.id for squad in squads for m in squad.living_mercs]
        if any(i in retreated for i in merc_ids):
            raise AlreadyRetreatedError("这些单位已经撤退")
        combatants = list(combatants)
        if combatants:
            # 记录要到回写时才标记阵亡，本场已阵亡的佣兵以快照为准
            standing = {u.id for u in combatants if not u.is_dead}
            merc_ids = [i for i in merc_ids if i in standing]
        if not merc_ids:
            raise InvalidRetreatError("没有存活的佣兵可以撤退")

        valid_ids = {s.id for s in cls.get_valid_retreat_sectors(game, sector, side, player)}
        if destination.id not in valid_ids:
            raise InvalidRetreatError(f"不能撤退到区域 {destination.id}")

        for squad in squads:
            squad.sector_id = destination.id
        retreated.update(merc_ids)

        moved = set(merc_ids)
        for unit in combatants:
            if unit.id in moved:
                unit.retreated = True
                unit.sector_id = destination.id

        logger.info("%s 从区域 %s 撤退到 %s: %s", side.value, sector.id, destination.id, ", ".join(merc_ids))
        return merc_ids
