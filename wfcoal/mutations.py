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
Module responsible for generating sequences along a simulated ancestry.

The event log of an :class:`.EvolutionHistory` is replayed forwards in time,
from the oldest event to the most recent. Sequences are created lazily at
the roots of the graph, passed down to the children of each node along the
material they inherit, and mutated along every branch.
"""
import logging

import numpy as np

from . import ancestry
from . import core
from . import exceptions

logger = logging.getLogger(__name__)

NUCLEOTIDES = b"ATGC"


def _parse_alphabet(alphabet):
    if isinstance(alphabet, str):
        alphabet = alphabet.encode("ascii")
    alphabet = bytes(alphabet)
    if len(alphabet) < 2:
        raise ValueError("Alphabet must contain at least two symbols")
    if len(set(alphabet)) != len(alphabet):
        raise ValueError("Alphabet symbols must be distinct")
    if 0 in alphabet:
        raise ValueError("Alphabet cannot contain the null byte")
    return alphabet


class SequenceOverlay:
    """
    Paints sequences onto an :class:`.EvolutionHistory`.

    Sequences are numpy ``uint8`` arrays holding the byte codes of the
    alphabet symbols. Positions outside a node's ancestral material are
    never inherited by the samples and are left as zero where they have
    no value.

    :param EvolutionHistory history: The simulated ancestry.
    :param numpy.random.Generator random_generator: The source of randomness.
    :param float mutation_rate: The mutation rate per site per generation.
        Defaults to the rate stored in the history's parameters.
    :param bytes alphabet: The symbols sequences are made of.
    """

    def __init__(
        self, history, random_generator, *, mutation_rate=None, alphabet=NUCLEOTIDES
    ):
        self.history = history
        self.rng = random_generator
        self.alphabet = np.frombuffer(_parse_alphabet(alphabet), dtype=np.uint8)
        params = history.parameters
        if mutation_rate is None:
            mutation_rate = params.mutation_rate
        self.mutation_rate = ancestry._parse_rate(mutation_rate, "mutation_rate")
        self.N = params.population_size
        self.L = params.genome_length
        self.sequences = {}
        self.num_mutations = 0

    def random_sequence(self):
        return self.alphabet[self.rng.integers(len(self.alphabet), size=self.L)]

    def _sequence(self, u):
        try:
            return self.sequences.pop(u)
        except KeyError:
            raise exceptions.InvariantError(f"Node {u} has no sequence assigned")

    def coalescence(self, event):
        (a,) = event.participants
        seq = self.sequences.pop(a, None)
        if seq is None:
            # First time we reach this part of the graph: a root.
            seq = self.random_sequence()
        for child in self.history.nodes[a].children:
            self.sequences[child] = seq.copy()

    def transfer(self, event):
        received = np.zeros(self.L, dtype=np.uint8)
        children = set()
        for a in event.participants:
            node = self.history.nodes[a]
            seq = self._sequence(a)
            for frag in node.assembly:
                received[frag.begin : frag.end + 1] = seq[frag.begin : frag.end + 1]
            children.update(node.children)
        if len(children) != 1:
            raise exceptions.InvariantError(
                f"Transfer nodes {event.participants} do not share a single child"
            )
        self.sequences[children.pop()] = received

    def mutate(self, seq, num_mutations):
        """
        Applies the specified number of point mutations to the sequence in
        place. Each mutation changes the symbol at a uniformly chosen
        position to a uniformly chosen different symbol.
        """
        num_states = len(self.alphabet)
        for _ in range(num_mutations):
            position = self.rng.integers(self.L)
            state = self.alphabet[self.rng.integers(num_states)]
            while state == seq[position]:
                state = self.alphabet[self.rng.integers(num_states)]
            seq[position] = state
        self.num_mutations += num_mutations

    def mutate_all(self, branch_time):
        """
        Mutates every live sequence over a branch of the specified length,
        measured in units of N generations.
        """
        mean = branch_time * self.mutation_rate * self.N * self.L
        for u in sorted(self.sequences.keys()):
            self.mutate(self.sequences[u], self.rng.poisson(mean))

    def run(self):
        """
        Replays the history and returns a dictionary mapping each sample
        node to its sequence.
        """
        history = self.history
        waiting_times = history.waiting_times()
        if len(history.events) == 0:
            # A single sample is its own root.
            self.sequences[history.root] = self.random_sequence()
        for j in reversed(range(len(history.events))):
            event = history.events[j]
            if event.type == ancestry.EventType.COALESCENCE:
                self.coalescence(event)
            else:
                self.transfer(event)
            self.mutate_all(waiting_times[j] / self.N)
        logger.info(
            "Generated %d mutations over %d events",
            self.num_mutations,
            len(history.events),
        )
        if set(self.sequences.keys()) != set(history.samples):
            raise exceptions.InvariantError(
                "Sequences were not resolved down to the samples"
            )
        return {u: self.sequences[u] for u in history.samples}


def sim_mutations(history, *, rate=None, random_seed=None, alphabet=NUCLEOTIDES):
    """
    Generates sequences for the samples of the specified
    :class:`.EvolutionHistory`, with point mutations at the specified rate
    per site per generation.

    :param EvolutionHistory history: The simulated ancestry.
    :param float rate: The mutation rate. Defaults to the mutation rate
        the history was simulated with.
    :param int random_seed: The random seed. If None, one is generated.
    :param bytes alphabet: The symbols to generate sequences from
        (default ``b"ATGC"``).
    :return: A dictionary mapping sample index to a numpy ``uint8`` array.
    :rtype: dict
    """
    if not isinstance(history, ancestry.EvolutionHistory):
        raise TypeError("First argument must be an EvolutionHistory instance.")
    seed = core.parse_random_seed(random_seed)
    overlay = SequenceOverlay(
        history,
        core.make_random_generator(seed),
        mutation_rate=rate,
        alphabet=alphabet,
    )
    return overlay.run()


def as_strings(sequences):
    """
    Returns a copy of the specified sequence dictionary with the values
    decoded to strings.
    """
    return {u: seq.tobytes().decode("ascii") for u, seq in sequences.items()}
