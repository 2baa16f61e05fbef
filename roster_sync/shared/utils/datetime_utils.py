"""
Utilidades para manejo de fechas y horas.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

# Formato del parametro `date` del trigger de sync
SYNC_DATE_FORMAT = "%m%d%Y"
# Formato de fecha que entiende el find de FileMaker
FILEMAKER_DATE_FORMAT = "%m/%d/%Y"
LOG_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class DateTimeUtils:
    """Clase de utilidades para operaciones con fechas y horas."""

    @staticmethod
    def now_utc() -> datetime:
        """
        Obtiene la fecha y hora actual en UTC.

        Returns:
            datetime: Fecha y hora actual en UTC
        """
        return datetime.now(timezone.utc)

    @staticmethod
    def format_log_time(dt: datetime, tz_name: str) -> str:
        """
        Formatea un datetime en la zona horaria de display de los logs.

        Args:
            dt: Objeto datetime (naive se interpreta como UTC)
            tz_name: Nombre IANA de la zona horaria (p.ej. America/Chicago)
        """
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(ZoneInfo(tz_name)).strftime(LOG_TIME_FORMAT)

    @staticmethod
    def expiration_from(dt: datetime, minutes: int) -> datetime:
        """Retorna `dt` + `minutes` minutos."""
        return dt + timedelta(minutes=minutes)

    @staticmethod
    def parse_sync_date(value: str) -> Optional[datetime]:
        """
        Parsea una fecha MMDDYYYY.

        Returns:
            Optional[datetime]: Objeto datetime o None si el formato no es valido
        """
        try:
            return datetime.strptime(value, SYNC_DATE_FORMAT)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def to_filemaker_date(value: str) -> str:
        """
        Convierte MMDDYYYY a MM/DD/YYYY.

        Raises:
            ValueError: si `value` no tiene el formato MMDDYYYY
        """
        parsed = DateTimeUtils.parse_sync_date(value)
        if parsed is None:
            raise ValueError(f"Fecha invalida '{value}': se esperaba MMDDYYYY")
        return parsed.strftime(FILEMAKER_DATE_FORMAT)
