from datetime import datetime


def format_time(milliseconds: int) -> str:
    """Format a duration as MM:SS.cc (minutes, seconds, hundredths)."""
    minutes = milliseconds // 60000
    seconds = (milliseconds % 60000) // 1000
    hundredths = (milliseconds % 1000) // 10
    return f"{minutes:02d}:{seconds:02d}.{hundredths:02d}"


def format_date(moment: datetime) -> str:
    """Local date and hours:minutes for history entries."""
    local = moment.astimezone()
    return local.strftime("%Y-%m-%d %H:%M")
