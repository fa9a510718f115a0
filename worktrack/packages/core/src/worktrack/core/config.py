"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、提及触发阈值、订阅队列容量、深链接路径等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("WORKTRACK_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "WORKTRACK_DB_PATH",
        str(_get_base_dir() / "sqlite" / "worktrack.db"),
    )


# '@' 之后至少输入多少字符才请求候选
MENTION_MIN_QUERY_LENGTH: int = int(
    os.environ.get("WORKTRACK_MENTION_MIN_QUERY_LENGTH", "1")
)

# 单个订阅的快照队列容量（满了之后该订阅被丢弃）
SUBSCRIPTION_QUEUE_MAXSIZE: int = int(
    os.environ.get("WORKTRACK_SUBSCRIPTION_QUEUE_MAXSIZE", "100")
)

# 通知深链接路径
MANAGEMENT_URL_PATH: str = "/management"
CHAT_URL_PATH: str = "/chat"

# 日志中单个字符串字段的最大长度（评论 / 笔记正文可能很长），0 表示不截断
LOG_MAX_VALUE_LENGTH: int = int(os.environ.get("WORKTRACK_LOG_MAX_VALUE_LENGTH", "200"))
