"""
应用配置
从环境变量读取配置（支持 .env 文件）
"""
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "Hotel Booking Core"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./hotel.db"
    SQLITE_BUSY_TIMEOUT: float = 30.0  # 秒，写锁等待时间

    # JWT 配置
    SECRET_KEY: str = "hotel-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 24

    # 支付记录币种（单币种）
    CURRENCY: str = "ARS"

    # 预订规则
    MAX_GUESTS_PER_RESERVATION: int = 10
    MAX_RESERVATION_NIGHTS: int = 365
    MAX_ADVANCE_YEARS: int = 2

    # 维修提醒：下一位客人入住前的天数
    MAINTENANCE_WARNING_DAYS: int = 3

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


# 全局设置实例
settings = Settings()
