"""
Spanish (es-ES) date and time formatting for orientation replies.
"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

WEEKDAYS_ES = ("lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo")
MONTHS_ES = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)


def local_now(tz_name: str = "Europe/Madrid") -> datetime:
    try:
        return datetime.now(ZoneInfo(tz_name))
    except ZoneInfoNotFoundError:
        return datetime.now().astimezone()


def time_es(moment: Optional[datetime] = None, tz_name: str = "Europe/Madrid") -> str:
    """Clock time as ``HH:MM``."""
    moment = moment or local_now(tz_name)
    return moment.strftime("%H:%M")


def date_es(moment: Optional[datetime] = None, tz_name: str = "Europe/Madrid") -> str:
    """Long date, e.g. ``lunes, 19 de octubre de 2026``."""
    moment = moment or local_now(tz_name)
    weekday = WEEKDAYS_ES[moment.weekday()]
    month = MONTHS_ES[moment.month - 1]
    return f"{weekday}, {moment.day} de {month} de {moment.year}"
