"""Tests for the delegation audit sinks."""

from datetime import datetime, timezone

import pytest

from agent_router.delegator import TaskDelegator
from agent_router.schemas import HandlerId
from infrastructure.db import LoguruAuditSink, SqlAuditSink, get_audit_engine

H = HandlerId


@pytest.fixture
def sql_sink():
    return SqlAuditSink(engine=get_audit_engine("sqlite://"))


class TestSqlAuditSink:
    """One row per lifecycle event."""

    def test_record_and_read_back(self, sql_sink):
        sql_sink.record(
            "delegation_created",
            "del_1",
            {"deadline": datetime(2026, 1, 1, tzinfo=timezone.utc), "urgency": H.CO_FOUNDER},
        )
        sql_sink.record("handoff_completed", "del_1", {"action_items": []})
        sql_sink.record("delegation_created", "del_2", {})

        events = sql_sink.events("del_1")
        assert [e["event"] for e in events] == ["delegation_created", "handoff_completed"]
        assert events[0]["payload"]["deadline"] == "2026-01-01 00:00:00+00:00"
        assert events[0]["payload"]["urgency"] == "co_founder"
        assert len(sql_sink.events()) == 3

    @pytest.mark.asyncio
    async def test_delegator_writes_lifecycle(self, sql_sink):
        delegator = TaskDelegator(audit=sql_sink)
        result = await delegator.delegate(H.CO_FOUNDER, H.BUSINESS_ADVISOR, "Check pricing", urgency="high")
        await delegator.handoff(result.id, {"summary": "ok"}, H.BUSINESS_ADVISOR, H.CO_FOUNDER)

        events = sql_sink.events(result.id)
        assert [e["event"] for e in events] == ["delegation_created", "handoff_completed"]
        assert events[0]["payload"]["to_handler"] == "business_advisor"


class TestLoguruAuditSink:
    def test_record_logs_event(self):
        from loguru import logger

        messages = []
        sink_id = logger.add(messages.append, format="{message}")
        try:
            LoguruAuditSink().record("delegation_timeout", "del_9", {"reason": "late"})
        finally:
            logger.remove(sink_id)

        assert any("delegation_timeout" in str(m) and "del_9" in str(m) for m in messages)
