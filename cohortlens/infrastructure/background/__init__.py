# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background refresh infrastructure.

Dramatiq actors refresh one tier per message; an APScheduler process sends
one message per tier interval.

Quick Start:
    from cohortlens.infrastructure.background import setup_dramatiq, start_scheduler

    setup_dramatiq()
    await start_scheduler()

Running Workers:
    dramatiq cohortlens.infrastructure.background.tasks --processes 2 --threads 4

Actors are imported from the tasks subpackage, which sets up the broker on
import.
"""

from cohortlens.infrastructure.background.broker import (
    BrokerManager,
    Priority,
    Queues,
    get_broker,
    get_broker_manager,
    setup_dramatiq,
    shutdown_dramatiq,
)
from cohortlens.infrastructure.background.scheduler import (
    DramatiqScheduler,
    ScheduledTask,
    get_scheduler,
    start_scheduler,
    stop_scheduler,
)

__all__ = [
    # Broker
    "BrokerManager",
    "Priority",
    "Queues",
    "get_broker",
    "get_broker_manager",
    "setup_dramatiq",
    "shutdown_dramatiq",
    # Scheduler
    "DramatiqScheduler",
    "ScheduledTask",
    "get_scheduler",
    "start_scheduler",
    "stop_scheduler",
]
