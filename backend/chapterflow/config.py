"""应用配置 - 从环境变量和 .env 文件加载"""
from pathlib import Path
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# 项目根目录（backend/）
BASE_DIR = Path(__file__).resolve().parent.parent

# 数据目录：数据库文件、日志、上传文件
DATA_DIR = BASE_DIR / "data"

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    """应用设置，环境变量前缀为 CHAPTERFLOW_"""

    model_config = SettingsConfigDict(
        env_prefix="CHAPTERFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 应用
    app_name: str = "Chapterflow"
    app_version: str = "1.0.0"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    debug: bool = False
    cors_origins: List[str] = ["http://localhost:3000"]

    # 数据库
    database_url: str = f"sqlite+aiosqlite:///{DATA_DIR / 'chapterflow.db'}"
    database_echo: bool = False

    # 日志
    log_level: str = "INFO"
    log_to_file: bool = False
    log_file_path: str = str(DATA_DIR / "logs" / "chapterflow.log")
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5

    # 附件上传（本地 blob 存储）
    upload_dir: Path = DATA_DIR / "uploads"
    public_base_url: str = "/uploads"
    max_upload_bytes: int = 20 * 1024 * 1024

    # 认证服务写入的会话 Cookie 名称
    session_cookie_name: str = "user_id"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level

    @field_validator("max_upload_bytes")
    @classmethod
    def validate_max_upload_bytes(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("max_upload_bytes must be > 0")
        return v

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


settings = Settings()
