#
# Copyright (C) 2026 wfcoal developers
#
# This file is part of wfcoal.
#
# wfcoal is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# wfcoal is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with wfcoal.  If not, see <http://www.gnu.org/licenses/>.
#
"""
Core functions and classes used throughout wfcoal.
"""
from __future__ import annotations

import numbers
import os
import random
from typing import Any
from typing import Dict

import numpy as np

__version__ = "0.1.0"

MAX_SEED = 2**32 - 1

# Some machinery here for generating default random seeds. We need a map
# indexed by process ID here because we cannot use a global variable
# to store the state across multiple processes. Copy-on-write semantics
# for child processes means that they inherit the state of the parent
# process, so if we just keep a global variable without indexing by
# PID, child processes will share the same random generator as the
# parent.

_seed_rng_map: Dict[int, random.Random] = {}


def get_random_seed() -> int:
    global _seed_rng_map
    pid = os.getpid()
    if pid not in _seed_rng_map:
        # If we don't provide a seed to Random(), Python will seed either
        # from a system source of randomness (i.e., /dev/urandom) or the
        # current time if this is not available. Thus, our seed rng should
        # be unique, even across different processes.
        _seed_rng_map[pid] = random.Random()
    return _seed_rng_map[pid].randint(1, MAX_SEED)


def isinteger(value: Any) -> bool:
    """
    Returns True if the specified value can be converted losslessly to an
    integer.
    """
    if isinstance(value, numbers.Number):
        # Mypy doesn't realise we've done an isinstance here.
        return int(value) == float(value)  # type: ignore
    return False


def parse_random_seed(seed) -> int:
    """
    Parse the specified random seed value. If no seed is provided, generate a
    high-quality random seed.
    """
    if seed is None:
        seed = get_random_seed()
    if isinstance(seed, np.ndarray):
        seed = seed[0]
    if not isinteger(seed):
        raise TypeError("Random seed must be an integer")
    seed = int(seed)
    if not 1 <= seed <= MAX_SEED:
        raise ValueError(f"Random seed must be between 1 and {MAX_SEED}")
    return seed


def make_random_generator(seed: int) -> np.random.Generator:
    """
    Returns a new numpy random generator seeded with the specified value.
    Every simulation run owns exactly one of these.
    """
    return np.random.default_rng(seed)


def spawn_seeds(seed: int, num_replicates: int) -> list:
    """
    Derives ``num_replicates`` independent seeds from the specified master
    seed. The derived seeds depend only on the master seed and the replicate
    index, so replicates can be run in any order or in parallel.
    """
    children = np.random.SeedSequence(seed).spawn(num_replicates)
    return [int(child.generate_state(1)[0]) % MAX_SEED + 1 for child in children]
