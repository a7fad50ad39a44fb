# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging
import logging.handlers
import sys

import pytest

from pollflow._logging_config import CONSOLE_HANDLER_NAME, CORE_LOG_FILE, FILE_HANDLER_NAME
from pollflow.api import init_basic_logging


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in [handler for handler in root.handlers if handler not in handlers]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)


def _pollflow_handlers(root):
    return [handler for handler in root.handlers if handler.get_name() in (CONSOLE_HANDLER_NAME, FILE_HANDLER_NAME)]


class TestLoggingConfig:
    def test_init_basic_logging(self, root_logger, tmp_path, monkeypatch):
        monkeypatch.delenv("AWS_LAMBDA_FUNCTION_NAME", raising=False)
        log_dir = tmp_path / "logs"

        assert init_basic_logging(str(log_dir), root_level=logging.DEBUG) is root_logger
        assert root_logger.level == logging.DEBUG
        handlers = _pollflow_handlers(root_logger)
        assert any(isinstance(handler, logging.handlers.RotatingFileHandler) for handler in handlers)
        assert any(getattr(handler, "stream", None) is sys.stdout for handler in handlers)
        assert (log_dir / CORE_LOG_FILE).exists()

    def test_repeated_init_does_not_stack_handlers(self, root_logger, tmp_path, monkeypatch):
        monkeypatch.delenv("AWS_LAMBDA_FUNCTION_NAME", raising=False)

        init_basic_logging(tmp_path)
        init_basic_logging(tmp_path, root_level=logging.WARNING)

        handlers = _pollflow_handlers(root_logger)
        assert sorted(handler.get_name() for handler in handlers) == [CONSOLE_HANDLER_NAME, FILE_HANDLER_NAME]
        console = [handler for handler in handlers if handler.get_name() == CONSOLE_HANDLER_NAME][0]
        assert console.level == logging.WARNING

    def test_no_console_handler_on_lambda(self, root_logger, monkeypatch):
        monkeypatch.setenv("AWS_LAMBDA_FUNCTION_NAME", "pollflow-fn")

        init_basic_logging()

        assert not _pollflow_handlers(root_logger)
        assert root_logger.level == logging.INFO
