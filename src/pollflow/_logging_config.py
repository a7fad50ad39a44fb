# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""Default logging setup for processes hosting a pollflow Platform.

Exposed as 'pollflow.api.init_basic_logging'. Handlers installed here are named, so calling it again (e.g from a
warm Lambda container or a restarted host loop) replaces them rather than stacking duplicates.
"""
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional, Union

LOG_DATE_FORMAT = "%m/%d/%Y %I:%M:%S %p"
LOG_FORMAT = "%(asctime)s - %(name)-13s: %(levelname)-8s %(message)s"
FILE_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

CORE_LOG_FILE = "pollflow_core.log"
CORE_LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
CORE_LOG_FILE_BACKUP_COUNT = 5

CONSOLE_HANDLER_NAME = "pollflow.console"
FILE_HANDLER_NAME = "pollflow.file"


def is_on_aws_lambda() -> bool:
    # Lambda runtime installs its own stdout handler on the root logger
    return "AWS_LAMBDA_FUNCTION_NAME" in os.environ


def _replace_handler(logger: logging.Logger, handler: logging.Handler) -> None:
    for existing in [h for h in logger.handlers if h.get_name() == handler.get_name()]:
        logger.removeHandler(existing)
        existing.close()
    logger.addHandler(handler)


def init_basic_logging(
    log_dir: Optional[Union[str, Path]] = None, enable_console_logging: bool = True, root_level: int = logging.INFO
) -> logging.Logger:
    """Configure the root logger.

    :param log_dir: if provided, DEBUG and above also go to a rotating 'pollflow_core.log' in this directory
    :param enable_console_logging: stdout handler at 'root_level' (skipped on Lambda)
    :param root_level: level of the root logger
    :return: the root logger
    """
    logger = logging.getLogger()
    logger.setLevel(root_level)

    if enable_console_logging and not is_on_aws_lambda():
        console = logging.StreamHandler(sys.stdout)
        console.set_name(CONSOLE_HANDLER_NAME)
        console.setLevel(root_level)
        console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        _replace_handler(logger, console)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        rotating_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_path / CORE_LOG_FILE), maxBytes=CORE_LOG_FILE_MAX_BYTES, backupCount=CORE_LOG_FILE_BACKUP_COUNT
        )
        rotating_handler.set_name(FILE_HANDLER_NAME)
        rotating_handler.setLevel(logging.DEBUG)
        rotating_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        _replace_handler(logger, rotating_handler)

    return logger
