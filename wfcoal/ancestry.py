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
Module responsible for defining and running ancestry simulations.

The ancestry of a sample is simulated backwards in time under the coalescent
with homologous gene transfer. The result is an :class:`EvolutionHistory`:
an append-only arena of :class:`Node` objects forming the ancestral
recombination graph, together with the chronological log of the
:class:`Event` objects that created them.
"""
from __future__ import annotations

import dataclasses
import enum
import logging
from typing import ClassVar
from typing import List

import numpy as np
import tskit

from . import core
from . import exceptions
from . import intervals
from . import provenance

logger: logging.Logger = logging.getLogger(__name__)


class EventType(enum.IntEnum):
    """
    The kinds of event recorded in the event log.
    """

    COALESCENCE = 0
    """
    Two lineages find their common ancestor.
    """

    TRANSFER = 1
    """
    A block of the lineage's genome was received from a donor, splitting
    the lineage into the recipient's own material and the donor's.
    """


class NodeType(enum.Flag):
    """
    Flags recorded against internal nodes when the history is exported
    to tskit tables.
    """

    TRANSFER = 1 << 17
    COMMON_ANCESTOR = 1 << 18


@dataclasses.dataclass(frozen=True)
class PopulationParameters:
    """
    The validated parameters of a simulated Wright-Fisher population.

    Rates are per site per generation. ``transfer_rate`` is the rate at
    which a transfer of ``fragment_length`` consecutive sites is initiated at
    a given site, so each genome receives transfers at rate
    ``transfer_rate * genome_length`` per generation.
    """

    population_size: int
    sample_size: int
    genome_length: int
    mutation_rate: float = 0.0
    transfer_rate: float = 0.0
    fragment_length: int = 0

    @property
    def transfer_weight(self):
        """
        The ratio ``p`` of the per-lineage transfer rate to half the pairwise
        coalescence rate: a transfer happens with probability
        ``p / (k - 1 + p)`` when there are ``k`` lineages.
        """
        return (
            2.0 * self.population_size * self.genome_length * self.transfer_rate
        )

    def asdict(self):
        return dataclasses.asdict(self)


def _parse_positive_int(value, name):
    if not core.isinteger(value):
        raise TypeError(f"{name} must be an integer")
    value = int(value)
    if value <= 0:
        raise ValueError(f"{name} must be > 0")
    return value


def _parse_rate(value, name):
    if value is None:
        return 0.0
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise TypeError(f"{name} must be a number")
    if not np.isfinite(value) or value < 0:
        raise ValueError(f"{name} must be a finite non-negative number")
    return value


def _parse_population_parameters(
    *,
    sample_size,
    population_size,
    genome_length,
    mutation_rate=None,
    transfer_rate=None,
    fragment_length=None,
):
    """
    Validates the population parameters, returning a
    :class:`PopulationParameters` instance. Every configuration error is
    detected here, before any random numbers are drawn.
    """
    population_size = _parse_positive_int(population_size, "population_size")
    sample_size = _parse_positive_int(sample_size, "sample_size")
    genome_length = _parse_positive_int(genome_length, "genome_length")
    if sample_size > population_size:
        raise ValueError("sample_size cannot be greater than population_size")
    mutation_rate = _parse_rate(mutation_rate, "mutation_rate")
    transfer_rate = _parse_rate(transfer_rate, "transfer_rate")
    if transfer_rate > 0:
        if fragment_length is None:
            raise ValueError("Must specify fragment_length when transfer_rate > 0")
        fragment_length = _parse_positive_int(fragment_length, "fragment_length")
        if fragment_length >= genome_length:
            raise ValueError("fragment_length must be less than genome_length")
    elif fragment_length is None:
        fragment_length = 0
    else:
        if not core.isinteger(fragment_length):
            raise TypeError("fragment_length must be an integer")
        fragment_length = int(fragment_length)
        if fragment_length < 0:
            raise ValueError("fragment_length cannot be negative")
    return PopulationParameters(
        population_size=population_size,
        sample_size=sample_size,
        genome_length=genome_length,
        mutation_rate=mutation_rate,
        transfer_rate=transfer_rate,
        fragment_length=fragment_length,
    )


@dataclasses.dataclass
class Node:
    """
    A vertex of the ancestral recombination graph. Nodes are identified by
    their index in the arena of an :class:`EvolutionHistory`.

    A node with no children is a sample, one child means the node holds part
    of its child's material following a transfer, and two children means
    the node is the common ancestor of its children.
    """

    assembly: intervals.Assembly
    children: List[int] = dataclasses.field(default_factory=list)
    time: float = 0.0

    @property
    def is_sample(self):
        return len(self.children) == 0

    def asdict(self):
        return {
            "assembly": self.assembly.aslist(),
            "children": list(self.children),
            "time": self.time,
        }

    @staticmethod
    def fromdict(d):
        return Node(
            assembly=intervals.Assembly(d["assembly"]),
            children=list(d["children"]),
            time=float(d["time"]),
        )


@dataclasses.dataclass
class Event:
    """
    An entry in the event log. ``time`` is the number of generations
    before the present at which the event happened. For a coalescence the
    only participant is the new ancestor; for a transfer the participants
    are the derived nodes (the recipient's own material first).
    """

    time: float
    type: EventType  # noqa: A003
    participants: List[int]

    def asdict(self):
        return {
            "time": self.time,
            "type": int(self.type),
            "participants": list(self.participants),
        }

    @staticmethod
    def fromdict(d):
        return Event(
            time=float(d["time"]),
            type=EventType(d["type"]),
            participants=list(d["participants"]),
        )


@dataclasses.dataclass
class EvolutionHistory:
    """
    The complete output of an ancestry simulation: the final lineage pool,
    the node arena and the event log. Nodes ``0`` to ``sample_size - 1`` are
    the samples. Events are stored in the order they were encountered going
    backwards in time, so the oldest event is last.
    """

    parameters: PopulationParameters
    nodes: List[Node]
    events: List[Event]
    pool: List[int]
    random_seed: int = None

    FORMAT_NAME: ClassVar[str] = "wfcoal.EvolutionHistory"
    FORMAT_VERSION: ClassVar[int] = 1

    @property
    def num_nodes(self):
        return len(self.nodes)

    @property
    def num_events(self):
        return len(self.events)

    @property
    def samples(self):
        return list(range(self.parameters.sample_size))

    @property
    def root(self):
        """
        The node at which the ancestry of the whole sample is resolved.
        """
        if len(self.pool) != 1:
            raise ValueError("History is not complete")
        return self.pool[0]

    @property
    def genome_length(self):
        return self.parameters.genome_length

    def waiting_times(self):
        """
        Returns a numpy array giving, for each event, the number of
        generations separating it from the previous (more recent) event.
        """
        times = np.array([event.time for event in self.events], dtype=float)
        return np.diff(times, prepend=0.0)

    def asdict(self):
        return {
            "format_name": self.FORMAT_NAME,
            "format_version": self.FORMAT_VERSION,
            "parameters": self.parameters.asdict(),
            "random_seed": self.random_seed,
            "pool": list(self.pool),
            "nodes": [node.asdict() for node in self.nodes],
            "events": [event.asdict() for event in self.events],
        }

    @staticmethod
    def fromdict(d):
        return EvolutionHistory(
            parameters=PopulationParameters(**d["parameters"]),
            nodes=[Node.fromdict(node) for node in d["nodes"]],
            events=[Event.fromdict(event) for event in d["events"]],
            pool=list(d["pool"]),
            random_seed=d.get("random_seed"),
        )

    def dump_tables(self, *, record_provenance=True):
        """
        Returns a :class:`tskit.TableCollection` encoding the ancestral
        recombination graph. Each (parent, child) pair gets one edge per
        fragment of the material passed along it; coordinates are converted
        from closed intervals to tskit's half-open intervals.
        """
        tables = tskit.TableCollection(sequence_length=self.genome_length)
        for node in self.nodes:
            flags = 0
            if node.is_sample:
                flags = tskit.NODE_IS_SAMPLE
            elif len(node.children) == 1:
                flags = NodeType.TRANSFER.value
            else:
                flags = NodeType.COMMON_ANCESTOR.value
            tables.nodes.add_row(flags=flags, time=node.time)
        for parent, node in enumerate(self.nodes):
            if len(node.children) == 1:
                # The derived node carries only part of its child's material.
                (child,) = node.children
                for frag in node.assembly:
                    tables.edges.add_row(frag.begin, frag.end + 1, parent, child)
            else:
                for child in node.children:
                    for frag in self.nodes[child].assembly:
                        tables.edges.add_row(frag.begin, frag.end + 1, parent, child)
        tables.sort()
        if record_provenance:
            parameters = {"command": "sim_ancestry", **self.parameters.asdict()}
            parameters["random_seed"] = self.random_seed
            tables.provenances.add_row(
                provenance.json_encode_provenance(
                    provenance.get_provenance_dict(parameters)
                )
            )
        return tables

    def tree_sequence(self):
        """
        Returns the ancestral recombination graph as a
        :class:`tskit.TreeSequence`.
        """
        return self.dump_tables().tree_sequence()


class Simulator:
    """
    Simulates the ancestry of a sample backwards in time, building the
    ancestral recombination graph one event at a time.

    :param PopulationParameters parameters: The validated parameters.
    :param numpy.random.Generator random_generator: The source of randomness.
        This is owned by the simulator for the duration of the run and must
        not be shared with concurrently running simulations.
    :param bool debug: If True, verify all invariants after every event.
    """

    def __init__(self, parameters, random_generator, *, debug=False, random_seed=None):
        self.parameters = parameters
        self.rng = random_generator
        self.debug = debug
        self.random_seed = random_seed
        self.N = parameters.population_size
        self.L = parameters.genome_length
        self.p = parameters.transfer_weight
        self.time = 0.0
        self.nodes = [
            Node(intervals.Assembly.full(self.L))
            for _ in range(parameters.sample_size)
        ]
        self.pool = list(range(parameters.sample_size))
        self.events = []
        self.num_ca_events = 0
        self.num_transfer_events = 0

    def _store_node(self, assembly, children):
        assembly.verify()
        self.nodes.append(Node(assembly, children, self.time))
        return len(self.nodes) - 1

    def _replace_in_pool(self, removed, added):
        self.pool = [u for u in self.pool if u not in removed] + added

    def next_event(self):
        """
        Returns the tuple (waiting_time, event_type) for the next event,
        with the waiting time measured in generations. Once the pool holds
        as many lineages as there are genomes in the population no
        transfer can happen, so only coalescences are drawn.
        """
        k = len(self.pool)
        p = self.p if k < self.N else 0.0
        total_rate = k * (k - 1 + p) / 2
        waiting_time = self.rng.exponential(1 / total_rate) * self.N
        event_type = EventType.COALESCENCE
        if self.rng.random() < p / (k - 1 + p):
            event_type = EventType.TRANSFER
        return waiting_time, event_type

    def common_ancestor_event(self):
        """
        Implements a coalescence of two lineages chosen uniformly from the
        pool, returning a list holding the index of the new ancestor node.
        """
        k = len(self.pool)
        a = self.pool[self.rng.integers(k)]
        b = self.pool[self.rng.integers(k)]
        while a == b:
            b = self.pool[self.rng.integers(k)]
        assembly = intervals.merge(self.nodes[a].assembly, self.nodes[b].assembly)
        u = self._store_node(assembly, [a, b])
        self._replace_in_pool({a, b}, [u])
        self.num_ca_events += 1
        return [u]

    def transfer_event(self):
        """
        Implements a transfer into a lineage chosen uniformly from the pool.
        A block of ``fragment_length`` sites starting at a uniformly chosen
        position (wrapping around the circular genome) came from a donor, so
        the lineage's material is split into the parts inherited from its
        own parent and from the donor. Returns the indexes of the derived
        nodes that carry material.
        """
        c = self.pool[self.rng.integers(len(self.pool))]
        begin = int(self.rng.integers(self.L))
        end = begin + self.parameters.fragment_length - 1
        assembly = self.nodes[c].assembly
        if end < self.L:
            own, donated = intervals.split(assembly, begin, end)
        else:
            # The donated block wraps around, so the recipient keeps the
            # complementary interval.
            donated, own = intervals.split(assembly, end - self.L + 1, begin - 1)
        derived = []
        for material in [own, donated]:
            if len(material) > 0:
                derived.append(self._store_node(material, [c]))
        if len(derived) == 0:
            raise exceptions.InvariantError(f"Lineage {c} carries no material")
        self._replace_in_pool({c}, derived)
        if len(self.pool) > self.N:
            raise exceptions.InvariantError(
                f"Pool of {len(self.pool)} lineages exceeds the population size"
            )
        self.num_transfer_events += 1
        return derived

    def run(self):
        """
        Runs the simulation until the whole sample has a single common
        ancestor, and returns the resulting :class:`EvolutionHistory`.
        """
        logger.info(
            "Simulating ancestry of %d samples: N=%d L=%d p=%g",
            len(self.pool),
            self.N,
            self.L,
            self.p,
        )
        if self.debug:
            self.verify()
        while len(self.pool) > 1:
            waiting_time, event_type = self.next_event()
            self.time += waiting_time
            if event_type == EventType.COALESCENCE:
                participants = self.common_ancestor_event()
            else:
                participants = self.transfer_event()
            self.events.append(Event(self.time, event_type, participants))
            logger.debug(
                "%s time=%f n=%d", event_type.name, self.time, len(self.pool)
            )
            if self.debug:
                self.verify()
        logger.info(
            "Completed at time=%g nodes=%d events=%d (coalescence=%d transfer=%d)",
            self.time,
            len(self.nodes),
            len(self.events),
            self.num_ca_events,
            self.num_transfer_events,
        )
        return EvolutionHistory(
            parameters=self.parameters,
            nodes=self.nodes,
            events=self.events,
            pool=self.pool,
            random_seed=self.random_seed,
        )

    def verify(self):
        """
        Checks the internal state of the simulator, raising an
        :class:`.InvariantError` if anything is inconsistent.
        """
        if len(set(self.pool)) != len(self.pool):
            raise exceptions.InvariantError(f"Duplicate lineages in pool {self.pool}")
        consumed = set()
        for node in self.nodes:
            node.assembly.verify()
            consumed.update(node.children)
        for u in self.pool:
            if not 0 <= u < len(self.nodes):
                raise exceptions.InvariantError(f"Pool refers to missing node {u}")
            if u in consumed:
                raise exceptions.InvariantError(f"Pool contains resolved node {u}")
            if len(self.nodes[u].assembly) == 0:
                raise exceptions.InvariantError(f"Lineage {u} carries no material")
        last_time = 0.0
        for event in self.events:
            if event.time < last_time:
                raise exceptions.InvariantError("Event times are not monotonic")
            last_time = event.time


def sim_ancestry(
    sample_size,
    *,
    population_size,
    genome_length,
    transfer_rate=None,
    fragment_length=None,
    mutation_rate=None,
    random_seed=None,
    num_replicates=None,
    debug=False,
):
    """
    Simulates the ancestral recombination graph of ``sample_size`` genomes
    sampled from a haploid Wright-Fisher population of constant size
    ``population_size``, with homologous gene transfer.

    If ``num_replicates`` is None, a single :class:`EvolutionHistory` is
    returned. Otherwise an iterator over ``num_replicates`` independent
    histories is returned; each replicate uses its own random generator
    derived from ``random_seed``, so that replicate ``j`` is the same
    however the replicates are consumed.

    :param int sample_size: The number of sampled genomes, between 1 and
        ``population_size``.
    :param int population_size: The number of genomes in the population.
    :param int genome_length: The number of sites in each genome.
    :param float transfer_rate: The rate per site per generation at which a
        transfer is initiated (default 0).
    :param int fragment_length: The number of consecutive sites carried by
        each transfer. Required if ``transfer_rate > 0``, and must be less
        than ``genome_length``.
    :param float mutation_rate: The mutation rate per site per generation.
        Not used by the ancestry simulation itself, but stored with the
        history for the subsequent mutation overlay (default 0).
    :param int random_seed: The random seed. If None, one is generated.
    :param int num_replicates: The number of replicates to generate.
    :param bool debug: Verify all internal invariants after every event.
    :return: An :class:`EvolutionHistory` or an iterator over them.
    """
    parameters = _parse_population_parameters(
        sample_size=sample_size,
        population_size=population_size,
        genome_length=genome_length,
        mutation_rate=mutation_rate,
        transfer_rate=transfer_rate,
        fragment_length=fragment_length,
    )
    seed = core.parse_random_seed(random_seed)
    if num_replicates is None:
        return _run_ancestry(parameters, seed, debug)
    num_replicates = _parse_positive_int(num_replicates, "num_replicates")
    return _ancestry_replicate_generator(parameters, seed, num_replicates, debug)


def _run_ancestry(parameters, seed, debug=False):
    sim = Simulator(
        parameters, core.make_random_generator(seed), debug=debug, random_seed=seed
    )
    return sim.run()


def _ancestry_replicate_generator(parameters, seed, num_replicates, debug):
    for replicate_index, replicate_seed in enumerate(
        core.spawn_seeds(seed, num_replicates)
    ):
        logger.info("Starting replicate %d", replicate_index)
        yield _run_ancestry(parameters, replicate_seed, debug)
