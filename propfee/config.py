import os
from urllib.parse import quote_plus
from dotenv import load_dotenv

# 加载环境变量
load_dotenv()


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


class Settings:
    # API基础配置
    API_TITLE = "物业收费管理API"
    API_VERSION = "1.0.0"
    DESCRIPTION = "物业收费实时可视化管理系统后端服务（部门/人员/收费记录管理与AI运营建议）"

    # 数据库配置：DATABASE_URL 优先，否则按 DB_* 拼接 MySQL 连接串
    DATABASE_URL = os.getenv("DATABASE_URL")
    DB_HOST = os.getenv("DB_HOST", "127.0.0.1")
    DB_PORT = _int_env("DB_PORT", 3306)
    DB_USER = os.getenv("DB_USER", "root")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    DB_DATABASE = os.getenv("DB_DATABASE", "propfee")

    # AI 服务配置（OpenAI 兼容接口，默认 SiliconFlow）
    AI_BASE_URL = os.getenv("AI_BASE_URL", "https://api.siliconflow.cn/v1")
    AI_API_KEY = os.getenv("AI_API_KEY", "")
    AI_MODEL_NAME = os.getenv("AI_MODEL_NAME", "deepseek-ai/DeepSeek-V3")
    AI_TIMEOUT_SECONDS = _int_env("AI_TIMEOUT_SECONDS", 60)

    # 会话存储：配置文件路径则持久化到 JSON 文件，否则仅保存在内存
    SESSION_FILE = os.getenv("SESSION_FILE", "")

    # 登录安全
    LOGIN_MAX_ATTEMPTS = _int_env("LOGIN_MAX_ATTEMPTS", 5)
    LOGIN_WINDOW_SECONDS = _int_env("LOGIN_WINDOW_SECONDS", 300)
    PASSWORD_HASH_ITERATIONS = _int_env("PASSWORD_HASH_ITERATIONS", 200000)

    # 本地状态与数据库的对账间隔（秒），0 表示关闭定时对账
    RECONCILE_INTERVAL_SECONDS = _int_env("RECONCILE_INTERVAL_SECONDS", 300)

    cors_origins_str = os.getenv("CORS_ORIGINS")
    if cors_origins_str:
        CORS_ORIGINS = [origin.strip() for origin in cors_origins_str.split(",") if origin.strip()]
    else:
        CORS_ORIGINS = ["*"]

    @property
    def database_url(self) -> str:
        """获取数据库连接串"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"mysql+pymysql://{self.DB_USER}:{quote_plus(self.DB_PASSWORD)}@"
            f"{self.DB_HOST}:{self.DB_PORT}/{self.DB_DATABASE}"
            "?charset=utf8mb4"
        )

    @property
    def ai_enabled(self) -> bool:
        return bool(self.AI_API_KEY)


# 创建配置实例
settings = Settings()
