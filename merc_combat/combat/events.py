"""
战斗事件日志 - 轻量级结构化事件记录

设计说明：
  每个 CombatEngine 持有自己的 CombatEventLog 实例，事件只被记录，不触发任何渲染或 I/O。
  动画层在战斗结束后 (或在决策点暂停时) 读取事件序列自行演出。
"""

from collections import Counter
from types import MappingProxyType
from typing import Any, Dict, List, Optional, Tuple

from ..models import CombatEvent, EventKind


class CombatEventLog:
    """事件日志（实例级）"""

    def __init__(self) -> None:
        self._events: List[CombatEvent] = []
        self._statistics: Counter = Counter()

    def publish(
        self,
        kind: EventKind,
        round_number: int,
        subject_id: Optional[str] = None,
        **data: Any
    ) -> CombatEvent:
        """记录一条事件并返回"""
        event = CombatEvent(
            kind=kind,
            round_number=round_number,
            subject_id=subject_id,
            data=MappingProxyType(dict(data)),
        )
        self._events.append(event)
        self._statistics[kind] += 1
        return event

    @property
    def events(self) -> Tuple[CombatEvent, ...]:
        return tuple(self._events)

    def events_for_round(self, round_number: int) -> List[CombatEvent]:
        return [e for e in self._events if e.round_number == round_number]

    def events_of_kind(self, kind: EventKind) -> List[CombatEvent]:
        return [e for e in self._events if e.kind == kind]

    def get_statistics(self) -> Dict[EventKind, int]:
        """按事件类型统计数量"""
        return dict(self._statistics)

    def mark(self) -> int:
        """返回当前位置，用于回滚到回合开始"""
        return len(self._events)

    def truncate(self, position: int) -> None:
        """丢弃 position 之后的事件"""
        for event in self._events[position:]:
            self._statistics[event.kind] -= 1
        del self._events[position:]
        self._statistics = +self._statistics

    def __len__(self) -> int:
        return len(self._events)
