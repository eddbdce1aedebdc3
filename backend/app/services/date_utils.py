"""
日期与时间工具
所有预订相关比较（今天、入住、重叠边界）都使用本地日历日 `date`，
不经过 UTC 转换，避免跨时区时日期偏移一天。
"""
import re
from datetime import date, datetime, timedelta
from typing import Callable, Iterator, Optional, Union

from app.exceptions import ValidationError
from app.models.ontology import WEEKDAYS

Clock = Callable[[], datetime]

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_local_date(value: Union[str, date, datetime]) -> date:
    """
    把 YYYY-MM-DD 或带时间的 ISO 字符串解析为本地日历日

    时间部分与时区后缀一律忽略："2025-03-10T23:30:00Z" -> 2025-03-10
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError("日期格式无效")

    date_part = value.strip().split("T")[0].split(" ")[0]
    match = _DATE_RE.match(date_part)
    if not match:
        raise ValidationError(f"日期格式无效: {value}")
    year, month, day = (int(g) for g in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        raise ValidationError(f"日期格式无效: {value}")


def nights_between(check_in: date, check_out: date) -> int:
    """入住晚数；调用方负责拒绝小于 1 的结果"""
    return (check_out - check_in).days


def today_local(clock: Optional[Clock] = None) -> date:
    """服务器本地时区的今天"""
    return (clock or datetime.now)().date()


def add_years(day: date, years: int) -> date:
    """加若干年；2 月 29 日落到非闰年时取 2 月 28 日"""
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        return day.replace(year=day.year + years, day=28)


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """半开区间 [a_start, a_end) 与 [b_start, b_end) 是否重叠"""
    return a_start < b_end and b_start < a_end


def iter_days(start: date, end: date) -> Iterator[date]:
    """逐日遍历 [start, end]（含两端）"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def weekday_name(day: date) -> str:
    """MONDAY ... SUNDAY"""
    return WEEKDAYS[day.weekday()]


# ============== HH:MM 时间 ==============

def parse_hhmm(value: str) -> int:
    """HH:MM -> 距午夜的分钟数"""
    match = _TIME_RE.match(value or "")
    if not match:
        raise ValidationError(f"时间格式无效（应为 HH:MM）: {value}")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_hhmm(minutes: int) -> str:
    """距午夜的分钟数 -> HH:MM"""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_minutes(hhmm: str, minutes: int) -> str:
    """HH:MM 加上分钟数"""
    return format_hhmm(parse_hhmm(hhmm) + minutes)


def get_clock() -> Clock:
    """依赖注入：当前本地时间来源（测试中可替换为固定时钟）"""
    return datetime.now
