"""用户 context 模型

context 的 read_filter 是 Taskwarrior 风格的过滤表达式，
目前只解析其中的项目约束。
"""

from pydantic import BaseModel, Field


class UserContext(BaseModel):
    """用户 context"""

    name: str = Field(description="context 名称")
    read_filter: str = Field(description="读过滤表达式")
    write_filter: str | None = Field(default=None, description="写过滤表达式")
    active: bool = Field(default=False, description="是否为当前活动 context")

    def project(self) -> str | None:
        """read_filter 中的项目约束"""
        return parse_project_from_filter(self.read_filter)


def parse_project_from_filter(expression: str) -> str | None:
    """从过滤表达式中提取 project:X / project=X / project==X

    Returns:
        项目名（去除引号），未找到时返回 None
    """
    for token in expression.split():
        if token.startswith("project:"):
            return token.removeprefix("project:").strip("\"'")
        if token.startswith("project="):
            value = token.split("=", 1)[1].lstrip("=").strip("\"'")
            if value:
                return value
    return None
