"""
Stockroom — 設定

すべて環境変数から読む。起動時に一度だけ評価される。
"""

import os

DATABASE_URL = os.environ["DATABASE_URL"]
REDIS_URL = os.environ.get("REDIS_URL")

SQL_ECHO = os.environ.get("SQL_ECHO", "").lower() in ("1", "true", "yes")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# 履歴一覧の上限 (一般一覧 / ダッシュボードの最近の動き)
HISTORY_LIMIT = int(os.environ.get("HISTORY_LIMIT", "100"))
RECENT_ACTIVITY_LIMIT = int(os.environ.get("RECENT_ACTIVITY_LIMIT", "10"))

LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))
