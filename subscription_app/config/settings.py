#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
订阅助手应用配置设置 - Supabase + OpenAI 兼容接口
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# 加载环境变量文件
backend_root = Path(__file__).parent.parent.parent
env_path = backend_root / ".env"
load_dotenv(env_path)

# 基本配置
DEBUG = os.getenv("DEBUG", "False").lower() == "true"

# Supabase 配置（订阅、套餐、账单数据）
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

# AI 服务配置
AI_API_KEY = os.getenv("AI_API_KEY")
AI_API_URL = os.getenv("AI_API_URL", "https://api.groq.com/openai/v1")
AI_MODEL = os.getenv("AI_MODEL", "llama-3.3-70b-versatile")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "30"))
AI_MAX_RETRIES = int(os.getenv("AI_MAX_RETRIES", "3"))
AI_RETRY_BASE_DELAY = float(os.getenv("AI_RETRY_BASE_DELAY", "1.0"))  # 秒

# 意图识别：关键词规则未命中时是否升级到模型
INTENT_MODEL_ENABLED = os.getenv("INTENT_MODEL_ENABLED", "True").lower() == "true"

# 限流配置（固定窗口）
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "10"))
RATE_LIMIT_WINDOW_MS = int(os.getenv("RATE_LIMIT_WINDOW_MS", "60000"))
RATE_LIMIT_CLEANUP_INTERVAL_MS = int(os.getenv("RATE_LIMIT_CLEANUP_INTERVAL_MS", str(RATE_LIMIT_WINDOW_MS)))

# 账单查询默认条数
BILLING_HISTORY_LIMIT = int(os.getenv("BILLING_HISTORY_LIMIT", "10"))

# 日志配置
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# CORS 配置
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

# 受信任主机，安全性由外层反向代理保证
TRUSTED_HOSTS = ["*"]

# 应用信息
APP_NAME = "Subscription Assistant API"
APP_VERSION = "1.0.0"
APP_DESCRIPTION = "基于自然语言的订阅管理助手"


# 配置验证
def validate_config():
    """验证配置"""
    errors = []

    if not SUPABASE_URL:
        errors.append("SUPABASE_URL is required")
    if not (SUPABASE_SERVICE_ROLE_KEY or SUPABASE_ANON_KEY):
        errors.append("SUPABASE_SERVICE_ROLE_KEY or SUPABASE_ANON_KEY is required")

    if not AI_API_KEY:
        errors.append("AI_API_KEY is required for AI services")

    if RATE_LIMIT_MAX_REQUESTS <= 0 or RATE_LIMIT_WINDOW_MS <= 0:
        errors.append("RATE_LIMIT_MAX_REQUESTS and RATE_LIMIT_WINDOW_MS must be positive")

    if errors:
        raise ValueError(f"Configuration errors: {', '.join(errors)}")


# 在导入时验证配置
try:
    validate_config()
except ValueError as e:
    print(f"⚠️  Configuration warning: {e}")


# 配置摘要
def get_config_summary():
    """获取配置摘要"""
    return {
        "app_name": APP_NAME,
        "app_version": APP_VERSION,
        "debug": DEBUG,
        "database": "Supabase",
        "ai_service": AI_MODEL if AI_API_KEY else "None (keyword fallback only)",
        "rate_limit": f"{RATE_LIMIT_MAX_REQUESTS}/{RATE_LIMIT_WINDOW_MS}ms",
    }


# 创建settings对象以便导入
class Settings:
    """配置设置类"""
    def __init__(self):
        # 基本配置
        self.DEBUG = DEBUG
        self.APP_NAME = APP_NAME
        self.APP_VERSION = APP_VERSION
        self.APP_DESCRIPTION = APP_DESCRIPTION
        self.LOG_LEVEL = LOG_LEVEL

        # 数据库配置（Supabase）
        self.SUPABASE_URL = SUPABASE_URL
        self.SUPABASE_ANON_KEY = SUPABASE_ANON_KEY
        self.SUPABASE_SERVICE_ROLE_KEY = SUPABASE_SERVICE_ROLE_KEY

        # AI配置
        self.AI_API_KEY = AI_API_KEY
        self.AI_API_URL = AI_API_URL
        self.AI_MODEL = AI_MODEL
        self.AI_TIMEOUT_SECONDS = AI_TIMEOUT_SECONDS
        self.AI_MAX_RETRIES = AI_MAX_RETRIES
        self.AI_RETRY_BASE_DELAY = AI_RETRY_BASE_DELAY
        self.INTENT_MODEL_ENABLED = INTENT_MODEL_ENABLED

        # 限流配置
        self.RATE_LIMIT_MAX_REQUESTS = RATE_LIMIT_MAX_REQUESTS
        self.RATE_LIMIT_WINDOW_MS = RATE_LIMIT_WINDOW_MS
        self.RATE_LIMIT_CLEANUP_INTERVAL_MS = RATE_LIMIT_CLEANUP_INTERVAL_MS

        # 账单配置
        self.BILLING_HISTORY_LIMIT = BILLING_HISTORY_LIMIT

        # CORS配置
        self.CORS_ORIGINS = CORS_ORIGINS

        # 信任的主机列表
        self.TRUSTED_HOSTS = TRUSTED_HOSTS

    def get_config_summary(self):
        """获取配置摘要"""
        return get_config_summary()


# 创建全局settings实例
settings = Settings()
