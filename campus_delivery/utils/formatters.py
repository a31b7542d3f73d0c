# campus_delivery/utils/formatters.py
from datetime import datetime
from typing import Optional
import pytz
from ..config import Config
from ..services.pricing import round_money

def format_price(amount) -> str:
    """Currency amount with two decimals"""
    return f"{Config.CURRENCY_SYMBOL}{round_money(amount):,.2f}"

def format_datetime(dt: Optional[datetime]) -> str:
    """Local date and time"""
    if dt is None:
        return "-"
    local_tz = pytz.timezone(Config.TIMEZONE)
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    local_time = dt.astimezone(local_tz)
    return local_time.strftime("%Y-%m-%d %H:%M")

def format_time_remaining(seconds: int) -> str:
    """MM:SS countdown"""
    seconds = max(0, int(seconds))
    minutes, seconds = divmod(seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"

def format_score(value: float) -> str:
    return f"{value * 100:.0f}%"

def short_id(order_id: str) -> str:
    return order_id[:8]
