"""
请求/响应相关Pydantic Schemas
"""
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class RequestEnvelope(BaseModel):
    """request发布到主题上的消息体"""

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        arbitrary_types_allowed=True
    )

    tracking_no: str = Field(..., alias="trackingNo", min_length=1, description="请求跟踪号")
    query: Any = Field(default=None, description="请求内容，原样传递")

    def to_payload(self) -> Dict[str, Any]:
        """转换为发布用的普通字典（query保持原对象，不做拷贝）"""
        return {"trackingNo": self.tracking_no, "query": self.query}
