from __future__ import annotations

import json
from datetime import datetime, timezone

from loguru import logger

from taskflow_engine.domain.models import Task
from taskflow_engine.logging_utils import configure_logging, pretty


class TestPretty:
    def test_dict(self):
        assert json.loads(pretty({"a": 1})) == {"a": 1}

    def test_model_uses_to_dict(self):
        task = Task(id="t1", title="x", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert json.loads(pretty(task))["id"] == "t1"

    def test_datetime_falls_back_to_str(self):
        stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert json.loads(pretty({"at": stamp})) == {"at": str(stamp)}

    def test_unserialisable_keys(self):
        assert pretty({(1, 2): "tuple key"}) == str({(1, 2): "tuple key"})


def test_configure_logging_filters_by_level(capsys):
    configure_logging("warning")
    logger.info("quiet message")
    logger.warning("loud message")
    _, err = capsys.readouterr()
    logger.remove()
    assert "loud message" in err
    assert "quiet message" not in err
