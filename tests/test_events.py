"""
单元测试: 战斗事件日志
验证每个日志实例互相隔离，以及回合回滚时的截断
"""

import pytest

from merc_combat.combat.events import CombatEventLog
from merc_combat.models import EventKind


class TestCombatEventLog:

    def test_publish_records_event(self):
        log = CombatEventLog()
        event = log.publish(EventKind.HIT, 1, "kim", hits=2)
        assert log.events == (event,)
        assert event.data["hits"] == 2
        assert len(log) == 1

    def test_event_data_is_read_only(self):
        log = CombatEventLog()
        event = log.publish(EventKind.DEATH, 1, "kim")
        with pytest.raises(TypeError):
            event.data["x"] = 1

    def test_instances_are_isolated(self):
        """两场战斗的日志互不影响"""
        a, b = CombatEventLog(), CombatEventLog()
        a.publish(EventKind.ROUND_START, 1)
        assert len(b) == 0

    def test_filters(self):
        log = CombatEventLog()
        log.publish(EventKind.ROUND_START, 1)
        log.publish(EventKind.HIT, 1, "a")
        log.publish(EventKind.HIT, 2, "b")
        assert len(log.events_for_round(1)) == 2
        assert [e.subject_id for e in log.events_of_kind(EventKind.HIT)] == ["a", "b"]
        assert log.get_statistics() == {EventKind.ROUND_START: 1, EventKind.HIT: 2}

    def test_truncate_rolls_back_statistics(self):
        log = CombatEventLog()
        log.publish(EventKind.ROUND_START, 1)
        mark = log.mark()
        log.publish(EventKind.HIT, 2, "a")
        log.publish(EventKind.DEATH, 2, "a")

        log.truncate(mark)

        assert len(log) == 1
        assert log.get_statistics() == {EventKind.ROUND_START: 1}
