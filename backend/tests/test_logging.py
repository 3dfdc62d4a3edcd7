# tests/test_logging.py
# 日志格式测试
#
# Workflow / Activity 里的日志要带上所属运行的 workflow_id，便于按运行检索。

import json
import logging

import pytest
from temporalio import activity
from temporalio.testing import ActivityEnvironment

from memeflow.core.logging import ColoredFormatter, JSONFormatter, TemporalContextFilter


def make_record(message: str = "候选图已生成", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="memeflow.workflows.activities.generation",
        level=logging.INFO,
        pathname=__file__,
        lineno=42,
        msg=message,
        args=(),
        exc_info=None,
        func="generate_meme_image",
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestTemporalContextFilter:

    def test_workflow_logger_context(self):
        record = make_record(
            temporal_workflow={"workflow_id": "meme-1", "run_id": "run-1", "workflow_type": "MemeGeneratorWorkflow"}
        )

        assert TemporalContextFilter().filter(record) is True
        assert record.workflow_id == "meme-1"
        assert record.run_id == "run-1"

    def test_activity_logger_context(self):
        record = make_record(
            temporal_activity={"workflow_id": "meme-2", "workflow_run_id": "run-2", "activity_type": "x"}
        )

        TemporalContextFilter().filter(record)

        assert record.workflow_id == "meme-2"
        assert record.run_id == "run-2"

    def test_outside_temporal(self):
        record = make_record()

        TemporalContextFilter().filter(record)

        assert record.workflow_id is None
        assert record.run_id is None

    @pytest.mark.asyncio
    async def test_inside_activity_context(self):
        """Activity 里用普通 logger 打的日志也能拿到运行信息"""

        async def log_inside_activity():
            record = make_record()
            TemporalContextFilter().filter(record)
            info = activity.info()
            return record.workflow_id, record.run_id, info.workflow_id, info.workflow_run_id

        workflow_id, run_id, expected_workflow_id, expected_run_id = await ActivityEnvironment().run(
            log_inside_activity
        )

        assert workflow_id == expected_workflow_id
        assert run_id == expected_run_id


class TestFormatters:

    def test_json_includes_run_fields(self):
        record = make_record(temporal_workflow={"workflow_id": "meme-1", "run_id": "run-1"})
        TemporalContextFilter().filter(record)

        data = json.loads(JSONFormatter().format(record))

        assert data["workflow_id"] == "meme-1"
        assert data["run_id"] == "run-1"
        assert data["message"] == "候选图已生成"
        assert data["function"] == "generate_meme_image"

    def test_json_omits_run_fields_outside_temporal(self):
        record = make_record(extra_data={"prompt": "cat"})
        TemporalContextFilter().filter(record)

        data = json.loads(JSONFormatter().format(record))

        assert "workflow_id" not in data
        assert "run_id" not in data
        assert data["extra"] == {"prompt": "cat"}

    def test_colored_shows_workflow_id(self):
        record = make_record(temporal_workflow={"workflow_id": "meme-1", "run_id": "run-1"})
        TemporalContextFilter().filter(record)

        line = ColoredFormatter().format(record)

        assert "generate_meme_image:42 [meme-1]" in line
        assert line.endswith("候选图已生成")
