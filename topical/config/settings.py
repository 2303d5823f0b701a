"""
配置设置
"""
from typing import List, Optional, Tuple

from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings

DEFAULT_TOPICS: Tuple[str, ...] = (
    # 预期活动的一般性通告，不用于报告错误或计划外事件
    "INFO",
    # 运行中发生的错误
    "ERROR",
)


class Settings(BaseSettings):
    """消息总线配置"""

    model_config = ConfigDict(
        env_file=".env",
        env_prefix="TOPICAL_",
        case_sensitive=True,
        extra="ignore"  # 忽略额外字段
    )

    # 请求/响应配置
    REQUEST_TTL_MS: float = 4200

    # 启动时注册的主题
    DEFAULT_TOPICS: List[str] = list(DEFAULT_TOPICS)

    # 日志配置
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    @field_validator("REQUEST_TTL_MS")
    @classmethod
    def check_ttl(cls, v):
        """TTL不能为负数"""
        if v < 0:
            raise ValueError("REQUEST_TTL_MS must not be negative")
        return v

    @field_validator("DEFAULT_TOPICS")
    @classmethod
    def upper_topics(cls, v):
        """主题名统一转为大写"""
        return [name.upper() for name in v]


# 全局配置实例
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """获取全局配置实例（单例）"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings():
    """丢弃缓存的配置，下次get_settings时重新读取环境变量"""
    global _settings
    _settings = None
