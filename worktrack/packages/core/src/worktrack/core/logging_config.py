"""structlog 配置模块

dev 模式：pretty print 可读输出
json 模式：结构化 JSON 输出

TaskView / NotificationService 通过 structlog contextvars 绑定 task_id、actor_id，
merge_contextvars 负责把它们并入每条日志。
"""

import logging
import os
from typing import Any

import structlog

from .config import LOG_MAX_VALUE_LENGTH

SERVICE_NAME = "worktrack"


def add_service_name(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


class TruncateLongValues:
    """截断过长的字符串字段，避免评论 / 笔记正文整段进入日志"""

    def __init__(self, max_length: int = LOG_MAX_VALUE_LENGTH) -> None:
        self.max_length = max_length

    def __call__(
        self, logger: Any, method_name: str, event_dict: structlog.types.EventDict
    ) -> structlog.types.EventDict:
        if self.max_length <= 0:
            return event_dict
        for key, value in event_dict.items():
            if key == "event" or not isinstance(value, str):
                continue
            if len(value) > self.max_length:
                event_dict[key] = f"{value[: self.max_length]}...(+{len(value) - self.max_length})"
        return event_dict


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """初始化 structlog 配置

    根据 WORKTRACK_LOG_FORMAT 环境变量选择渲染模式：
    - "json": 结构化 JSON 输出（生产环境）
    - "dev" (默认): pretty print 可读输出

    Args:
        log_format: 覆盖 WORKTRACK_LOG_FORMAT
        log_level: 覆盖 WORKTRACK_LOG_LEVEL
    """
    log_format = log_format or os.environ.get("WORKTRACK_LOG_FORMAT", "dev")
    log_level = log_level or os.environ.get("WORKTRACK_LOG_LEVEL", "INFO")

    # 基础处理器链
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        add_service_name,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        TruncateLongValues(),
    ]

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # 配置标准库 logging
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
