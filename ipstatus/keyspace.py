from __future__ import annotations

import ipaddress
import random
from itertools import islice
from typing import List, Sequence


def enumerate_keys(base: str, count: int) -> List[str]:
    """
    First `count` host addresses of `base` (e.g. "17.0.0.0/8"), ascending.
    """
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")
    network = ipaddress.ip_network(base, strict=False)
    keys = [str(ip) for ip in islice(network.hosts(), count)]
    if len(keys) < count:
        raise ValueError(f"{network} has only {len(keys)} host addresses, {count} requested")
    return keys


def shuffle_keys(keys: Sequence[str], rng: random.Random) -> List[str]:
    shuffled = list(keys)
    rng.shuffle(shuffled)
    return shuffled
