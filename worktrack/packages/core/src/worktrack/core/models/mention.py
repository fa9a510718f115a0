"""Transient Mention 模型

仅存在于编辑中的输入框内，提交或重置时销毁，不单独落盘。
"""

from pydantic import BaseModel, Field, model_validator


class Mention(BaseModel):
    """输入框内一次已选中的 @ 提及"""

    id: str = Field(description="提及 ID（仅在当前输入框内唯一）")
    user_id: str = Field(description="被提及用户 ID")
    user_name: str = Field(description="被提及用户名称")
    start_index: int = Field(ge=0, description="'@' 所在下标")
    end_index: int = Field(description="'@name' 结束下标（不含）")

    @model_validator(mode="after")
    def _check_span(self) -> "Mention":
        if self.end_index <= self.start_index:
            raise ValueError("end_index 必须大于 start_index")
        return self

    @property
    def token(self) -> str:
        """文本中对应的 '@name' 片段"""
        return f"@{self.user_name}"
