"""Time utilities for timezone-aware datetime handling."""

from datetime import date, datetime, timezone
from typing import Optional
import pytz


def utcnow() -> datetime:
    """取得當前 UTC 時間 (tz-aware)"""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    轉換時間為 UTC tz-aware datetime

    Args:
        dt: 輸入時間
        tz_name: 原時區名稱 (若 dt 為 naive)

    Returns:
        UTC tz-aware datetime
    """
    if dt.tzinfo is None:
        if tz_name:
            tz = pytz.timezone(tz_name)
            dt = tz.localize(dt)
        else:
            # 假設為 UTC
            dt = dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def analysis_date(tz_name: str = "UTC", now: Optional[datetime] = None) -> date:
    """
    取得 trend snapshot 的分析日期 (執行時區的「今天」)

    Args:
        tz_name: 執行時區
        now: 指定時間 (測試用)

    Returns:
        date
    """
    now = to_utc(now) if now else utcnow()
    return now.astimezone(pytz.timezone(tz_name)).date()


def format_duration(seconds: float) -> str:
    """秒數 -> '1m 05s' 形式"""
    minutes, secs = divmod(int(round(seconds)), 60)
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"
