"""Settings for the log client, the monitor and full tree verification.

Every value can be overridden through an environment variable; explicit constructor arguments
win over both.
"""

import os


def _get_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    return int(val)


def _get_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    return float(val)


class CtVerifySettings:
    # --- Log client ---
    # Seconds to wait for a CT log to answer a single request.
    http_timeout: float = _get_float("CTVERIFY_HTTP_TIMEOUT", 30.0)
    user_agent: str = os.getenv("CTVERIFY_USER_AGENT", "ctverify")

    # --- Tree verification ---
    # Number of entries requested per get-entries call. Logs may return fewer.
    entries_batch_size: int = _get_int("CTVERIFY_ENTRIES_BATCH_SIZE", 256)

    # --- Monitor ---
    # Seconds between two get-sth polls.
    monitor_interval: float = _get_float("CTVERIFY_MONITOR_INTERVAL", 10.0)


settings = CtVerifySettings()
