"""Run the background retention worker as a standalone process."""

import time

from audit_retention.core.database import init_db
from audit_retention.core.logging import configure_logging
from audit_retention.core.metrics import WORKER_UP_GAUGE
from audit_retention.services.retention_worker import retention_worker


def main() -> None:
    configure_logging()
    init_db()
    retention_worker.start()
    WORKER_UP_GAUGE.set(1)
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        retention_worker.stop()
        WORKER_UP_GAUGE.set(0)


if __name__ == "__main__":
    main()
