"""
Small helpers shared by the sweeper, the routers and the task manager
"""
import uuid
from datetime import datetime, timezone


def generate_request_id() -> str:
    """Short id tying together the log lines of one scheduled sweep call"""
    return f"req_{uuid.uuid4().hex[:12]}"


def utcnow() -> datetime:
    """Timezone-aware now; every deadline comparison uses this clock"""
    return datetime.now(timezone.utc)


def format_duration(seconds: float) -> str:
    """
    Render a sweep duration for log lines

    Examples:
        0.042 -> "42ms"
        3.5   -> "3.5s"
        125   -> "2m 5s"
    """
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"
    if seconds < 60:
        return f"{seconds:.1f}s".replace(".0s", "s")

    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s" if secs else f"{minutes}m"
