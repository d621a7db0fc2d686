import time
from datetime import datetime, timezone


utc_now = lambda: datetime.now(timezone.utc)
utc_now_ms = lambda: int(time.time() * 1000)
dt_to_ms = lambda dt: int(dt.timestamp() * 1000)
