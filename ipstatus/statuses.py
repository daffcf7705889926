from __future__ import annotations

import random
from enum import Enum


class Status(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


STATUSES = tuple(Status)


def assign_status(key: str, rng: random.Random) -> Status:
    # key is not consulted: statuses are simulated scan results
    return STATUSES[rng.randrange(len(STATUSES))]
