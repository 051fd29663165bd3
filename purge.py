from datetime import timedelta

from otm.config import settings
from otm.logging_utils import setup_logging
from otm.storage import MessageStore

# one-shot expiry sweep, e.g. from cron:
#   0 * * * * cd /srv/otm && python purge.py
setup_logging(settings.LOG_LEVEL)

store = MessageStore(
    settings.DATABASE_URL,
    ttl=timedelta(seconds=settings.MESSAGE_TTL_SECONDS),
    timeout=settings.DB_TIMEOUT_SECONDS,
)
store.init_schema()
try:
    print(store.purge_expired())
finally:
    store.close()
