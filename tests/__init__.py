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
Common code for the wfcoal test cases.
"""
import numpy as np

import wfcoal


def random_assembly(rng, genome_length, max_fragments=5):
    """
    Returns a random normalised assembly on a genome of the specified
    length, built by merging random fragments.
    """
    assembly = wfcoal.Assembly()
    for _ in range(rng.integers(0, max_fragments + 1)):
        begin = int(rng.integers(genome_length))
        end = int(rng.integers(begin, genome_length))
        assembly = wfcoal.merge(assembly, wfcoal.Assembly([(begin, end)]))
    return assembly


def position_set(assembly):
    return set(assembly.positions().tolist())


def pool_sizes(history):
    """
    Replays the event log and returns the size of the lineage pool after
    each event.
    """
    size = history.parameters.sample_size
    sizes = []
    for event in history.events:
        if event.type == wfcoal.EventType.COALESCENCE:
            size -= 1
        else:
            size += len(event.participants) - 1
        sizes.append(size)
    return np.array(sizes, dtype=int)


def transfer_history(sample_size=5, **kwargs):
    """
    Returns the first history, over a range of seeds, that includes at least
    one transfer event.
    """
    params = dict(
        population_size=100,
        genome_length=50,
        transfer_rate=0.0002,
        fragment_length=10,
    )
    params.update(kwargs)
    for seed in range(1, 100):
        history = wfcoal.sim_ancestry(sample_size, random_seed=seed, **params)
        if any(e.type == wfcoal.EventType.TRANSFER for e in history.events):
            return history
    raise AssertionError("No transfer events generated")
