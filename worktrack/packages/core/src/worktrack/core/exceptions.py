"""协同核心异常体系

解析失败在 resolver 内部降级，不在此定义；
写入失败（StoreWriteError）需要上抛给发起方。
"""


class CollabError(Exception):
    """协同核心基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过用户重试恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class InvalidPathError(CollabError):
    """store 路径为空或格式非法"""

    def __init__(self, path: str) -> None:
        super().__init__(f"非法 store 路径: {path!r}", recoverable=False)
        self.path = path


class StoreWriteError(CollabError):
    """持久化写入失败（评论追加、字段保存、通知创建）

    调用方应回滚对应的乐观状态，并向用户提示可重试。
    """

    def __init__(self, path: str, original_error: Exception) -> None:
        """
        Args:
            path: 写入的 store 路径
            original_error: 原始异常
        """
        super().__init__(f"写入失败: {path} -- {original_error}", recoverable=True)
        self.path = path
        self.original_error = original_error


class MentionStateError(CollabError):
    """当前输入框状态不允许该提及操作（例如没有激活的 '@' 触发）"""

    def __init__(self, message: str = "当前没有激活的提及触发") -> None:
        super().__init__(message, recoverable=True)


class NotificationNotFoundError(CollabError):
    """通知不存在，或不属于该接收者"""

    def __init__(self, notification_id: str, user_id: str) -> None:
        super().__init__(
            f"通知不存在: {notification_id} (user={user_id})",
            recoverable=False,
        )
        self.notification_id = notification_id
        self.user_id = user_id
