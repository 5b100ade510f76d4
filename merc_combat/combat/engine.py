"""
战斗回合引擎 (状态机)

一个 CombatEngine 实例对应一场战斗:
  装配 -> [先手排序 -> 攻击 -> 伤害 -> 移除阵亡 -> 继续判定 -> 撤退判定]* -> 结算

引擎在决策点 (人工选择目标、撤退、肾上腺素) 暂停并返回 PendingDecision，
调用方通过 submit() 回答后继续推进。所有随机数都来自游戏持有的带种子随机源。
战斗中只修改快照，结算 (或中断) 时统一回写；撤退例外，小队立即移动。
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union

from ..ai.combat_helpers import (
    choose_die_to_sacrifice, select_attack_dog_target, should_reroll,
    should_retreat, should_use_epinephrine
)
from ..config import Config
from ..errors import CombatStateError, DecisionError, InvalidRetreatError, ItemNotCarriedError
from ..factory import CombatantAssembler
from ..models import (
    AIChoice, AttackKind, AttackRecord, BehaviorFlag, Combatant, CombatContext, CombatOutcome,
    CombatPhase, CombatResult, CombatRoundRecord, ControlMode, DamageRecord, DecisionKind,
    EquipmentChange, EquipmentChangeKind, EventKind, PendingDecision, Side, Stat
)
from ..rules.abilities import AbilityRegistry
from ..rules.equipment import EquipmentEffectRegistry
from ..world import Game, RebelPlayer, Sector
from .calculator import CombatCalculator
from .events import CombatEventLog
from .landmine import detonate_land_mines
from .retreat import RetreatEvaluator
from .targeting import TargetSelector
from .writeback import STASH_HOLDER, apply_combat_results

logger = logging.getLogger(__name__)

EngineStatus = Union[CombatResult, PendingDecision]

# 攻击队列中的先手排序标记
_INITIATIVE = "__initiative__"

# 回合检查点需要保存的快照字段
_RESTORED_FIELDS = (
    "health", "armor", "is_dead", "side", "owner_id", "reroll_used",
    "assigned_dog_id", "dog_target_id", "converted_from",
    "base_combat", "base_initiative", "base_training", "base_targets",
)


@dataclass
class _AttackStep:
    """进行中的攻击子步骤，可在决策点暂停后继续"""
    attacker_id: str
    kind: AttackKind
    stage: str = "declare"      # declare -> targets? -> roll -> damage -> deaths -> done
    dice: int = 0
    threshold: int = Config.HIT_THRESHOLD
    targets: List[str] = field(default_factory=list)
    rolls: List[int] = field(default_factory=list)
    rerolled_from: Optional[Tuple[int, ...]] = None
    sacrificed: Optional[int] = None
    hits: int = 0
    sixes: int = 0
    hit_ids: List[str] = field(default_factory=list)
    damage: List[DamageRecord] = field(default_factory=list)
    dying: List[str] = field(default_factory=list)


@dataclass
class _Checkpoint:
    """回合开始时的快照，中断时回滚到这里"""
    round_number: int
    rebels: List[Combatant]
    dictator_side: List[Combatant]
    states: Dict[str, Dict[str, Any]]
    killed: int
    converted: int
    changes: int
    log_mark: int


class CombatEngine:
    """战斗回合引擎"""

    def __init__(
        self,
        game: Game,
        sector: Sector,
        attacking_player: RebelPlayer | None = None,
        *,
        rebel_control: ControlMode = ControlMode.HUMAN,
        dictator_control: ControlMode = ControlMode.AI,
        max_rounds: int = Config.MAX_ROUNDS,
        abilities: AbilityRegistry | None = None,
        equipment: EquipmentEffectRegistry | None = None
    ) -> None:
        """
        装配双方单位并准备战斗 (不执行任何回合)

        Args:
            game: 游戏状态 (提供地图与随机源)
            sector: 战斗区域
            attacking_player: 发起战斗的反抗军玩家
            rebel_control: 反抗军控制方式
            dictator_control: 独裁者一方控制方式
            max_rounds: 回合上限，达到后判定平局
            abilities: 能力注册表，默认使用包内自带表
            equipment: 装备效果注册表，默认使用能力表绑定的装备表

        Raises:
            EmptySideError: 任意一方没有可参战单位
        """
        self.game = game
        self.sector = sector
        self.attacking_player = attacking_player
        self.abilities = abilities or AbilityRegistry.default()
        self.equipment = equipment or self.abilities.equipment
        self.controls: Dict[Side, ControlMode] = {
            Side.REBEL: rebel_control,
            Side.DICTATOR: dictator_control,
        }
        self.max_rounds = max_rounds
        self.targeting = TargetSelector(self.abilities)
        self.log = CombatEventLog()

        rebels, dictator_side = CombatantAssembler.build(game, sector, attacking_player)
        CombatantAssembler.validate(rebels + dictator_side)
        self.context = CombatContext(round_number=0, rebels=rebels, dictator_side=dictator_side)

        self._phase = CombatPhase.ASSEMBLING
        self._round_number = 0
        self._pending: Optional[PendingDecision] = None
        self._result: Optional[CombatResult] = None

        self._rounds: List[CombatRoundRecord] = []
        self._killed: List[str] = []
        self._converted: List[str] = []
        self._retreated: List[str] = []
        self._retreated_ids: set[str] = set()
        self._retreat_sector_id: Optional[str] = None
        self._changes: List[EquipmentChange] = []
        self._departed: List[Combatant] = []    # 已离开名单 (阵亡或撤退) 的单位

        # 当前回合状态
        self._queue: List[Tuple[str, AttackKind]] = []
        self._queue_pos = 0
        self._step: Optional[_AttackStep] = None
        self._attacks: List[AttackRecord] = []
        self._casualties: List[str] = []
        self._initiative_order: Tuple[str, ...] = ()
        self._conversions: Dict[str, Combatant] = {}
        self._retreat_queue: Optional[List[RebelPlayer]] = None
        self._checkpoint: Optional[_Checkpoint] = None

        game.combat_locked.add(sector.id)
        self.log.publish(
            EventKind.COMBAT_START, 0, sector.id,
            rebels=[u.id for u in rebels],
            dictator_side=[u.id for u in dictator_side],
        )

    # ------------------------------------------------------------------ #
    #  公共接口                                                           #
    # ------------------------------------------------------------------ #

    @property
    def phase(self) -> CombatPhase:
        return self._phase

    @property
    def pending(self) -> Optional[PendingDecision]:
        return self._pending

    @property
    def result(self) -> Optional[CombatResult]:
        return self._result

    @property
    def round_number(self) -> int:
        return self._round_number

    @property
    def rebels(self) -> List[Combatant]:
        return self.context.rebels

    @property
    def dictator_side(self) -> List[Combatant]:
        return self.context.dictator_side

    def run(self) -> EngineStatus:
        """推进战斗直到结束或遇到决策点"""
        if self._result is not None:
            return self._result
        if self._pending is not None:
            return self._pending
        return self._advance()

    def submit(self, value: Any) -> EngineStatus:
        """
        回答当前决策并继续推进

        Args:
            value: 目标 id 列表 / 撤退区域 id (None 表示继续战斗) / 肾上腺素携带者 id (None 表示放弃)

        Raises:
            CombatStateError: 没有等待中的决策或战斗已结束
            DecisionError: 回答非法，决策保持不变
        """
        if self._result is not None:
            raise CombatStateError("战斗已经结束")
        pending = self._pending
        if pending is None:
            raise CombatStateError("当前没有等待中的决策")

        try:
            match pending.kind:
                case DecisionKind.TARGETS:
                    self._answer_targets(value)
                case DecisionKind.EPINEPHRINE:
                    self._answer_epinephrine(value)
                case DecisionKind.RETREAT:
                    self._answer_retreat(value)
        except DecisionError as e:
            logger.warning("决策被拒绝 (%s, %s): %s", pending.kind.value, pending.actor_id, e.reason)
            raise

        self._pending = None
        return self._advance()

    def stop(self) -> CombatResult:
        """中断战斗: 回滚到当前回合开始时的状态并回写"""
        if self._result is not None:
            return self._result
        if self._checkpoint is not None:
            self._restore(self._checkpoint)
        self._pending = None
        self._step = None
        self._queue = []
        logger.info("区域 %s 的战斗在第 %d 回合后被中断", self.sector.id, self._round_number)
        return self._resolve(CombatOutcome.INTERRUPTED, None)

    # ------------------------------------------------------------------ #
    #  主循环                                                             #
    # ------------------------------------------------------------------ #

    def _advance(self) -> EngineStatus:
        while self._result is None and self._pending is None:
            match self._phase:
                case CombatPhase.ASSEMBLING:
                    self._pre_combat()
                case CombatPhase.ROLLING_INITIATIVE:
                    self._begin_round()
                case CombatPhase.ATTACKING | CombatPhase.APPLYING_DAMAGE:
                    self._run_attacks()
                case CombatPhase.REMOVING_DEAD:
                    self._remove_dead()
                case CombatPhase.CHECKING_CONTINUATION:
                    self._check_continuation()
                case CombatPhase.RETREAT_CHECK:
                    self._offer_retreats()
                case _:
                    raise CombatStateError(f"非法阶段: {self._phase}")
        return self._result if self._result is not None else self._pending

    def _set_phase(self, phase: CombatPhase) -> None:
        logger.debug("区域 %s 回合 %d: %s -> %s", self.sector.id, self._round_number, self._phase.value, phase.value)
        self._phase = phase

    def _pause(self, decision: PendingDecision) -> None:
        logger.info("等待决策 %s: %s", decision.kind.value, decision.actor_id)
        self._pending = decision

    def _all_units(self) -> List[Combatant]:
        return self.rebels + self.dictator_side

    # ------------------------------------------------------------------ #
    #  战前                                                               #
    # ------------------------------------------------------------------ #

    def _pre_combat(self) -> None:
        """战前: 固定先手掷骰、攻击犬指派、地雷"""
        for unit in self._all_units():
            if self.abilities.has_behavior(unit, BehaviorFlag.ROLLS_INITIATIVE, self.context):
                unit.rolled_initiative = self.game.rng.randint(1, Config.DICE_SIDES)
                logger.debug("%s 本场战斗先手值: %d", unit.id, unit.rolled_initiative)

        self._assign_attack_dogs()
        self._resolve_land_mines()

        decided = self._decided_outcome()
        if decided is not None:
            self._resolve(*decided)
            return
        self._set_phase(CombatPhase.ROLLING_INITIATIVE)

    def _assign_attack_dogs(self) -> None:
        for owner in self._all_units():
            if not owner.is_alive or not owner.is_merc_like:
                continue
            for item in owner.equipment:
                if not self.equipment.is_attack_dog(item):
                    continue
                decision = select_attack_dog_target(owner, self.context, self.abilities)
                if not isinstance(decision, AIChoice):
                    continue
                target = decision.value
                dog = CombatantAssembler.dog_snapshot(owner, item, self.equipment.get_dog_health(item))
                dog.dog_target_id = target.id
                target.assigned_dog_id = dog.id
                self.context.side_of(owner.side).append(dog)
                self.log.publish(EventKind.DOG_ASSIGNED, 0, dog.id, owner=owner.id, target=target.id)

    def _resolve_land_mines(self) -> None:
        outcome = detonate_land_mines(
            self.sector, self.rebels, self.dictator_side, self.context, self.abilities, self.equipment
        )
        if not outcome.triggered:
            return
        mine = outcome.mine
        self._changes.append(
            EquipmentChange(STASH_HOLDER, mine.id, mine.instance_id, EquipmentChangeKind.CONSUMED)
        )
        self.log.publish(
            EventKind.LAND_MINE, 0, mine.instance_id,
            detonated=outcome.detonated,
            disarmed_by=outcome.disarmed_by,
            damage=[(d.target_id, d.armor_damage, d.health_damage) for d in outcome.damage],
        )
        for record in outcome.damage:
            unit = self.context.find(record.target_id)
            if unit is not None and unit.health == 0:
                self._kill(unit)
        self._prune_roster()
        self._casualties = []

    # ------------------------------------------------------------------ #
    #  回合                                                               #
    # ------------------------------------------------------------------ #

    def _begin_round(self) -> None:
        self._round_number += 1
        self.context.round_number = self._round_number
        for unit in self._all_units():
            CombatantAssembler.refresh_base_stats(unit)
        self._checkpoint = self._take_checkpoint()

        self._attacks = []
        self._casualties = []
        self._conversions = {}
        self._initiative_order = ()
        self._queue = []
        self._queue_pos = 0

        # 先发制人只在第一回合、先手排序之前进行
        if self._round_number == 1:
            for unit in self._all_units():
                if (unit.is_alive and not unit.is_dog
                        and self.abilities.has_behavior(unit, BehaviorFlag.PREEMPTIVE_STRIKE, self.context)):
                    self._queue.append((unit.id, AttackKind.PREEMPTIVE))
        self._queue.append((_INITIATIVE, AttackKind.NORMAL))

        self.log.publish(
            EventKind.ROUND_START, self._round_number,
            rebels=sum(1 for u in self.rebels if u.is_alive),
            dictator_side=sum(1 for u in self.dictator_side if u.is_alive),
        )
        self._set_phase(CombatPhase.ATTACKING)

    def _order_initiative(self) -> None:
        units = [u for u in self._all_units() if u.is_alive and not u.is_dog]
        order = CombatCalculator.sort_by_initiative(
            units,
            lambda u: self.abilities.effective_value(Stat.INITIATIVE, u, self.context),
            lambda u, flag: self.abilities.has_behavior(u, flag, self.context),
        )
        self._initiative_order = tuple(u.id for u in order)
        self._queue.extend((u.id, AttackKind.NORMAL) for u in order)
        self._queue.extend(
            (u.id, AttackKind.SECOND_SHOT) for u in order
            if self.abilities.has_behavior(u, BehaviorFlag.SECOND_SHOT, self.context)
        )
        self.log.publish(EventKind.INITIATIVE, self._round_number, order=list(self._initiative_order))

    def _run_attacks(self) -> None:
        while self._queue_pos < len(self._queue):
            unit_id, kind = self._queue[self._queue_pos]
            if unit_id == _INITIATIVE:
                self._order_initiative()
            else:
                if self._step is None:
                    self._step = _AttackStep(unit_id, kind)
                self._continue_step(self._step)
                if self._pending is not None:
                    return
                self._step = None
            self._queue_pos += 1
        self._set_phase(CombatPhase.REMOVING_DEAD)

    # ------------------------------------------------------------------ #
    #  攻击子步骤                                                         #
    # ------------------------------------------------------------------ #

    def _continue_step(self, step: _AttackStep) -> None:
        attacker = self.context.find(step.attacker_id)
        if step.stage == "declare":
            if attacker is None or not attacker.is_alive or attacker.is_dog:
                step.stage = "done"
                return
            self._declare(step, attacker)
            if self._pending is not None:
                return
        if step.stage == "roll":
            self._roll(step, attacker)
        if step.stage == "damage":
            self._apply_hits(step, attacker)
        if step.stage == "deaths":
            self._process_dying(step, attacker)

    def _declare(self, step: _AttackStep, attacker: Combatant) -> None:
        step.dice = self.abilities.effective_value(Stat.COMBAT, attacker, self.context)
        step.threshold = self.abilities.hit_threshold(attacker)
        if step.dice <= 0:
            # 战斗值为 0: 不掷骰、不命中
            self._record_attack(step, attacker)
            step.stage = "done"
            return
        if not self.targeting.legal_targets(attacker, self.context):
            step.stage = "done"
            return

        if (self.controls[attacker.side] == ControlMode.HUMAN
                and self.targeting.needs_choice(attacker, self.context)):
            options = tuple(t.id for t in self.targeting.ordered_candidates(attacker, self.context))
            step.stage = "targets"
            self._pause(PendingDecision(
                kind=DecisionKind.TARGETS,
                side=attacker.side,
                actor_id=attacker.id,
                options=options,
                max_choices=self.targeting.max_targets(attacker, self.context),
                prompt=f"{attacker.name} 选择攻击目标",
            ))
            return

        step.targets = [t.id for t in self.targeting.choose_targets(attacker, self.context)]
        step.stage = "roll"

    def _roll(self, step: _AttackStep, attacker: Combatant) -> None:
        rng = self.game.rng
        rolls = CombatCalculator.roll_dice(rng, step.dice)
        if (not attacker.reroll_used
                and self.abilities.has_behavior(attacker, BehaviorFlag.MAY_REROLL_ONCE, self.context)
                and should_reroll(rolls, step.threshold)):
            step.rerolled_from = tuple(rolls)
            rolls = CombatCalculator.roll_dice(rng, step.dice)
            attacker.reroll_used = True

        if self.abilities.has_behavior(attacker, BehaviorFlag.SACRIFICE_DIE_TO_HEAL, self.context):
            self._sacrifice_die(step, attacker, rolls)

        step.rolls = rolls
        step.hits = CombatCalculator.count_hits(rolls, step.threshold)
        step.sixes = sum(1 for r in rolls if r == Config.DICE_SIDES and r >= step.threshold)
        step.stage = "damage"

    def _sacrifice_die(self, step: _AttackStep, attacker: Combatant, rolls: List[int]) -> None:
        """用一枚未命中的骰子治疗伤势最重的队友"""
        patients = [m for m in self.context.squad_mates(attacker) if m.damage > 0]
        if not patients:
            return
        decision = choose_die_to_sacrifice(rolls, step.threshold)
        if not isinstance(decision, AIChoice):
            return
        patient = sorted(patients, key=lambda m: (-m.damage, m.id))[0]
        step.sacrificed = rolls.pop(decision.value)
        patient.health = min(patient.max_health, patient.health + Config.SURGEON_HEAL_PER_DIE)
        self.log.publish(
            EventKind.HEAL, self._round_number, patient.id,
            healer=attacker.id, amount=Config.SURGEON_HEAL_PER_DIE, die=step.sacrificed,
        )

    def _apply_hits(self, step: _AttackStep, attacker: Combatant) -> None:
        self._set_phase(CombatPhase.APPLYING_DAMAGE)
        targets = [
            t for t in (self.context.find(i) for i in step.targets)
            if t is not None and t.is_alive
        ]
        piercing = bool(attacker.weapon and attacker.weapon.config.negates_armor)
        allocation = self.targeting.distribute_hits(
            attacker, targets, step.hits, step.sixes, self.context, piercing
        )

        for target, hits in allocation:
            armor_before = target.armor
            record = CombatCalculator.apply_damage(target, hits, piercing)
            step.damage.append(record)
            step.hit_ids.append(target.id)
            self.log.publish(
                EventKind.HIT, self._round_number, target.id,
                attacker=attacker.id, hits=hits,
                armor_damage=record.armor_damage, health_damage=record.health_damage,
            )
            if armor_before > 0 and target.armor == 0 and target.armor_item is not None:
                self._destroy_armor(target)
            if target.health == 0 and target.id not in step.dying:
                step.dying.append(target.id)

        self._consume_weapon(attacker)
        self._record_attack(step, attacker)
        self._set_phase(CombatPhase.ATTACKING)
        step.stage = "deaths"

    def _record_attack(self, step: _AttackStep, attacker: Combatant) -> None:
        target_ids = tuple(dict.fromkeys(step.targets + step.hit_ids))
        record = AttackRecord(
            attacker_id=attacker.id,
            kind=step.kind,
            rolls=tuple(step.rolls),
            hit_threshold=step.threshold,
            hits=step.hits,
            target_ids=target_ids,
            damage=tuple(step.damage),
            rerolled_from=step.rerolled_from,
            sacrificed_die=step.sacrificed,
        )
        self._attacks.append(record)
        self.log.publish(
            EventKind.ATTACK, self._round_number, attacker.id,
            attack_kind=step.kind.value, rolls=list(record.rolls), hits=record.hits, targets=list(target_ids),
        )

    def _destroy_armor(self, target: Combatant) -> None:
        item = target.armor_item
        target.equipment.remove(item)
        self._changes.append(EquipmentChange(target.id, item.id, item.instance_id, EquipmentChangeKind.DESTROYED))
        self.log.publish(EventKind.ARMOR_DESTROYED, self._round_number, target.id, item=item.instance_id)

    def _consume_weapon(self, attacker: Combatant) -> None:
        """一次性武器与投掷类爆炸物在攻击后消耗"""
        weapon = attacker.weapon
        if weapon is None:
            return
        if not (weapon.config.is_one_use or self.equipment.discards_after_attack(weapon)):
            return
        attacker.equipment.remove(weapon)
        self._changes.append(EquipmentChange(attacker.id, weapon.id, weapon.instance_id, EquipmentChangeKind.CONSUMED))
        self.log.publish(EventKind.ITEM_CONSUMED, self._round_number, attacker.id, item=weapon.instance_id)

    # ------------------------------------------------------------------ #
    #  阵亡、肾上腺素与转化                                               #
    # ------------------------------------------------------------------ #

    def _process_dying(self, step: _AttackStep, attacker: Combatant) -> None:
        while step.dying:
            unit = self.context.find(step.dying[0])
            if unit is None or unit.is_dead or unit.health > 0:
                step.dying.pop(0)
                continue

            if unit.is_militia and self.abilities.has_behavior(
                    attacker, BehaviorFlag.CONVERTS_MILITIA, replace(self.context, target=unit)):
                self._conversions[unit.id] = attacker
                step.dying.pop(0)
                continue

            if unit.is_merc_like:
                carriers = self._epinephrine_carriers(unit)
                if carriers and self.controls[unit.side] == ControlMode.HUMAN:
                    self._pause(PendingDecision(
                        kind=DecisionKind.EPINEPHRINE,
                        side=unit.side,
                        actor_id=unit.id,
                        options=tuple(c.id for c in carriers) + (None,),
                        prompt=f"{unit.name} 生命值归零，是否使用肾上腺素",
                    ))
                    return
                if carriers:
                    decision = should_use_epinephrine(unit, self.context.squad_mates(unit), self.equipment)
                    if isinstance(decision, AIChoice):
                        self._use_epinephrine(unit, decision.value)
                        step.dying.pop(0)
                        continue

            self._kill(unit)
            step.dying.pop(0)
        step.stage = "done"

    def _epinephrine_carriers(self, unit: Combatant) -> List[Combatant]:
        return [
            c for c in [unit, *self.context.squad_mates(unit)]
            if any(self.equipment.is_epinephrine(eq) for eq in c.equipment)
        ]

    def _use_epinephrine(self, unit: Combatant, carrier: Combatant) -> None:
        item = next((eq for eq in carrier.equipment if self.equipment.is_epinephrine(eq)), None)
        if item is None:
            raise ItemNotCarriedError(f"{carrier.name} 没有携带肾上腺素")
        carrier.equipment.remove(item)
        self._changes.append(EquipmentChange(carrier.id, item.id, item.instance_id, EquipmentChangeKind.CONSUMED))
        unit.health = min(unit.max_health, self.equipment.get_death_prevention_heal(item))
        self.log.publish(EventKind.EPINEPHRINE, self._round_number, unit.id, carrier=carrier.id, item=item.instance_id)

    def _kill(self, unit: Combatant) -> None:
        unit.is_dead = True
        self._casualties.append(unit.id)
        self.log.publish(EventKind.DEATH, self._round_number, unit.id, unit_kind=unit.kind.value, side=unit.side.value)
        if unit.is_dog:
            self._release_dog(unit)

    def _release_dog(self, dog: Combatant) -> None:
        """攻击犬阵亡: 装备被摧毁，被缠住的佣兵恢复自由"""
        item = dog.source
        for owner in self._all_units() + self._departed:
            if any(eq is item for eq in owner.equipment):
                owner.equipment.remove(item)
                self._changes.append(EquipmentChange(owner.id, item.id, item.instance_id, EquipmentChangeKind.DESTROYED))
                break
        target = self.context.find(dog.dog_target_id) if dog.dog_target_id else None
        if target is not None and target.assigned_dog_id == dog.id:
            target.assigned_dog_id = None

    def _prune_roster(self) -> List[str]:
        """把已阵亡或已撤退的单位移出名单"""
        removed = []
        for units in (self.rebels, self.dictator_side):
            gone = [u for u in units if u.is_dead or u.retreated]
            for unit in gone:
                units.remove(unit)
                self._departed.append(unit)
                if unit.is_dead:
                    self._killed.append(unit.id)
                    removed.append(unit.id)
        return removed

    def _remove_dead(self) -> None:
        conversions = []
        for militia_id, converter in self._conversions.items():
            unit = self.context.find(militia_id)
            if unit is None or unit.is_dead:
                continue
            old_side = unit.side
            self.context.side_of(old_side).remove(unit)
            unit.side = converter.side
            unit.owner_id = converter.owner_id
            unit.health = unit.max_health
            unit.converted_from = old_side
            self.context.side_of(converter.side).append(unit)
            conversions.append(unit.id)
            self.log.publish(EventKind.CONVERSION, self._round_number, unit.id, by=converter.id)
        self._conversions = {}
        self._converted.extend(conversions)

        casualties = self._prune_roster()
        self._rounds.append(CombatRoundRecord(
            round_number=self._round_number,
            initiative_order=self._initiative_order,
            attacks=tuple(self._attacks),
            casualties=tuple(casualties),
            conversions=tuple(conversions),
        ))
        logger.debug(
            "区域 %s 第 %d 回合结束: 阵亡 %d, 转化 %d",
            self.sector.id, self._round_number, len(casualties), len(conversions)
        )
        self._checkpoint = None
        self._set_phase(CombatPhase.CHECKING_CONTINUATION)

    # ------------------------------------------------------------------ #
    #  继续判定与撤退                                                     #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _side_active(units: List[Combatant]) -> bool:
        """攻击犬不能单独维持一方的存在"""
        return any(u.is_alive and not u.is_dog for u in units)

    def _decided_outcome(self) -> Optional[Tuple[CombatOutcome, Optional[Side]]]:
        rebels_up = self._side_active(self.rebels)
        dictator_up = self._side_active(self.dictator_side)
        if rebels_up and dictator_up:
            return None
        if not rebels_up and not dictator_up:
            return CombatOutcome.DRAW, None
        if rebels_up:
            return CombatOutcome.REBEL_VICTORY, Side.REBEL
        return CombatOutcome.DICTATOR_VICTORY, Side.DICTATOR

    def _check_continuation(self) -> None:
        decided = self._decided_outcome()
        if decided is not None:
            self._resolve(*decided)
            return
        if self._round_number >= self.max_rounds:
            self._resolve(CombatOutcome.DRAW, None)
            return
        self._retreat_queue = None
        self._set_phase(CombatPhase.RETREAT_CHECK)

    def _player_in_combat(self, player: RebelPlayer) -> bool:
        return any(u.owner_id == player.id and u.is_merc_like and u.is_alive for u in self.rebels)

    def _retreat_options(self, player: RebelPlayer) -> List[Sector]:
        if not RetreatEvaluator.can_retreat(self.game, self.sector, Side.REBEL, player):
            return []
        return RetreatEvaluator.get_valid_retreat_sectors(self.game, self.sector, Side.REBEL, player)

    def _offer_retreats(self) -> None:
        if self._retreat_queue is None:
            self._retreat_queue = [p for p in self.game.rebels if self._player_in_combat(p)]

        while self._retreat_queue:
            player = self._retreat_queue[0]
            valid = self._retreat_options(player)
            if valid:
                if self.controls[Side.REBEL] == ControlMode.HUMAN:
                    self._pause(PendingDecision(
                        kind=DecisionKind.RETREAT,
                        side=Side.REBEL,
                        actor_id=player.id,
                        options=tuple(s.id for s in valid) + (None,),
                        prompt=f"{player.name or player.id} 是否撤退",
                    ))
                    return
                own = [u for u in self.rebels if u.owner_id == player.id]
                decision = should_retreat(own, self.dictator_side, valid)
                if isinstance(decision, AIChoice):
                    self._retreat(player, decision.value)
            self._retreat_queue.pop(0)

        self._retreat_queue = None
        if not self._side_active(self.rebels):
            # 反抗军全部撤离
            self._resolve(CombatOutcome.RETREAT, None)
            return
        self._set_phase(CombatPhase.ROLLING_INITIATIVE)

    def _retreat(self, player: RebelPlayer, destination: Sector) -> None:
        moved = RetreatEvaluator.execute_retreat(
            self.game, self.sector, destination, Side.REBEL, player,
            retreated=self._retreated_ids, combatants=self._all_units(),
        )
        # 撤退佣兵带走的攻击犬一并离开
        carried = {id(eq) for u in self._all_units() if u.retreated for eq in u.equipment}
        for dog in self._all_units():
            if dog.is_dog and dog.is_alive and id(dog.source) in carried:
                dog.retreated = True
                moved.append(dog.id)

        self._retreated.extend(moved)
        self._retreat_sector_id = destination.id
        self.log.publish(EventKind.RETREAT, self._round_number, player.id, destination=destination.id, units=list(moved))
        for unit_id in moved:
            self.log.publish(EventKind.UNIT_LEAVES, self._round_number, unit_id, reason="retreat")
        self._prune_roster()

    # ------------------------------------------------------------------ #
    #  决策回答                                                           #
    # ------------------------------------------------------------------ #

    def _answer_targets(self, value: Any) -> None:
        step = self._step
        attacker = self.context.find(step.attacker_id)
        ids = [value] if isinstance(value, str) else [getattr(v, "id", v) for v in (value or [])]
        chosen = self.targeting.validate_choice(attacker, ids, self.context)
        step.targets = [t.id for t in chosen]
        step.stage = "roll"

    def _answer_epinephrine(self, value: Any) -> None:
        pending = self._pending
        unit = self.context.find(pending.actor_id)
        if value is None:
            self._kill(unit)
        else:
            carrier_id = getattr(value, "id", value)
            if carrier_id not in pending.options:
                raise ItemNotCarriedError(f"{carrier_id} 没有可用的肾上腺素")
            self._use_epinephrine(unit, self.context.find(carrier_id))
        self._step.dying.pop(0)

    def _answer_retreat(self, value: Any) -> None:
        pending = self._pending
        if value is not None:
            sector_id = getattr(value, "id", value)
            if sector_id not in pending.options:
                raise InvalidRetreatError(f"不能撤退到区域 {sector_id}")
            player = self.game.get_player(pending.actor_id)
            self._retreat(player, self.game.get_sector(sector_id))
        self._retreat_queue.pop(0)

    # ------------------------------------------------------------------ #
    #  检查点与结算                                                       #
    # ------------------------------------------------------------------ #

    def _take_checkpoint(self) -> _Checkpoint:
        states = {}
        for unit in self._all_units() + self._departed:
            state = {name: getattr(unit, name) for name in _RESTORED_FIELDS}
            state["equipment"] = list(unit.equipment)
            states[unit.id] = state
        return _Checkpoint(
            round_number=self._round_number,
            rebels=list(self.rebels),
            dictator_side=list(self.dictator_side),
            states=states,
            killed=len(self._killed),
            converted=len(self._converted),
            changes=len(self._changes),
            log_mark=self.log.mark(),
        )

    def _restore(self, checkpoint: _Checkpoint) -> None:
        self.rebels[:] = checkpoint.rebels
        self.dictator_side[:] = checkpoint.dictator_side
        for unit in self._all_units() + self._departed:
            for name, value in checkpoint.states[unit.id].items():
                setattr(unit, name, value)
        del self._killed[checkpoint.killed:]
        del self._converted[checkpoint.converted:]
        del self._changes[checkpoint.changes:]
        self.log.truncate(checkpoint.log_mark)
        self._conversions = {}
        self._round_number = checkpoint.round_number - 1
        self.context.round_number = self._round_number
        self._checkpoint = None
        logger.debug("区域 %s 回滚到第 %d 回合开始前", self.sector.id, checkpoint.round_number)

    def _resolve(self, outcome: CombatOutcome, winner: Optional[Side]) -> CombatResult:
        self._set_phase(CombatPhase.RESOLVED)
        units = self._all_units() + self._departed
        self._changes.extend(apply_combat_results(self.game, self.sector, units, self._changes))
        self.game.combat_locked.discard(self.sector.id)
        self.log.publish(
            EventKind.COMBAT_END, self._round_number, self.sector.id,
            outcome=outcome.value, winner=winner.value if winner else None,
        )
        self._result = CombatResult(
            sector_id=self.sector.id,
            outcome=outcome,
            winner=winner,
            rounds=tuple(self._rounds),
            killed=tuple(self._killed),
            retreated=tuple(self._retreated),
            converted=tuple(self._converted),
            equipment_changes=tuple(self._changes),
            events=self.log.events,
            retreat_sector_id=self._retreat_sector_id,
        )
        logger.info(
            "区域 %s 战斗结束: %s (%d 回合, 阵亡 %d)",
            self.sector.id, outcome.value, len(self._rounds), len(self._killed)
        )
        return self._result


def execute_combat(
    game: Game,
    sector: Sector,
    attacking_player: RebelPlayer | None = None,
    **kwargs: Any
) -> CombatResult:
    """双方均由 AI 控制，一次性执行完整场战斗"""
    kwargs["rebel_control"] = ControlMode.AI
    kwargs["dictator_control"] = ControlMode.AI
    engine = CombatEngine(game, sector, attacking_player, **kwargs)
    status = engine.run()
    if isinstance(status, PendingDecision):
        raise CombatStateError(f"AI 战斗在决策点暂停: {status.kind.value}")
    return status
