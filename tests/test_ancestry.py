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
Tests for the backwards-in-time ancestry simulation.
"""
import numpy as np
import pytest
import tskit

import tests
import wfcoal
from wfcoal import ancestry
from wfcoal import core
from wfcoal import exceptions


class TestParameterValidation:
    def simulate(self, **kwargs):
        params = dict(sample_size=2, population_size=10, genome_length=10)
        params.update(kwargs)
        return wfcoal.sim_ancestry(**params)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"population_size": 0},
            {"population_size": -5},
            {"sample_size": 0},
            {"sample_size": 11},
            {"genome_length": 0},
            {"mutation_rate": -1},
            {"transfer_rate": -0.1},
            {"transfer_rate": np.inf},
            {"transfer_rate": 0.1},
            {"transfer_rate": 0.1, "fragment_length": 0},
            {"transfer_rate": 0.1, "fragment_length": 10},
            {"transfer_rate": 0.1, "fragment_length": 11},
            {"fragment_length": -1},
            {"random_seed": 0},
            {"random_seed": 2**32},
            {"num_replicates": 0},
        ],
    )
    def test_bad_values(self, kwargs):
        with pytest.raises(ValueError):
            self.simulate(**kwargs)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"population_size": 10.5},
            {"sample_size": "2"},
            {"genome_length": None},
            {"mutation_rate": "x"},
            {"transfer_rate": 0.1, "fragment_length": 2.5},
            {"random_seed": 1.5},
        ],
    )
    def test_bad_types(self, kwargs):
        with pytest.raises(TypeError):
            self.simulate(**kwargs)

    def test_sample_size_equals_population_size(self):
        history = self.simulate(sample_size=10)
        assert history.parameters.sample_size == 10

    def test_integer_valued_floats(self):
        history = self.simulate(sample_size=2.0, population_size=10.0)
        assert history.parameters.population_size == 10
        assert isinstance(history.parameters.population_size, int)

    def test_fragment_length_ignored_without_transfer(self):
        history = self.simulate(fragment_length=3)
        assert history.parameters.fragment_length == 3
        assert history.parameters.transfer_rate == 0


class TestPopulationParameters:
    def test_defaults(self):
        params = ancestry._parse_population_parameters(
            sample_size=2, population_size=10, genome_length=5
        )
        assert params.mutation_rate == 0
        assert params.transfer_rate == 0
        assert params.fragment_length == 0
        assert params.transfer_weight == 0

    def test_transfer_weight(self):
        params = ancestry._parse_population_parameters(
            sample_size=2,
            population_size=100,
            genome_length=50,
            transfer_rate=0.001,
            fragment_length=5,
        )
        assert params.transfer_weight == pytest.approx(2 * 100 * 50 * 0.001)

    def test_frozen(self):
        params = ancestry._parse_population_parameters(
            sample_size=2, population_size=10, genome_length=5
        )
        with pytest.raises(AttributeError):
            params.population_size = 5

    def test_asdict(self):
        params = ancestry._parse_population_parameters(
            sample_size=2, population_size=10, genome_length=5, mutation_rate=0.5
        )
        assert params.asdict() == {
            "population_size": 10,
            "sample_size": 2,
            "genome_length": 5,
            "mutation_rate": 0.5,
            "transfer_rate": 0.0,
            "fragment_length": 0,
        }


class TestNoTransfer:
    """
    With no transfer the history is a bifurcating coalescent tree.
    """

    @pytest.mark.parametrize("n", [2, 3, 10, 50])
    def test_bifurcating(self, n):
        history = wfcoal.sim_ancestry(
            n, population_size=1000, genome_length=20, random_seed=n
        )
        assert history.num_events == n - 1
        assert history.num_nodes == 2 * n - 1
        assert all(e.type == wfcoal.EventType.COALESCENCE for e in history.events)
        for u, node in enumerate(history.nodes):
            if u < n:
                assert node.is_sample
                assert node.time == 0
            else:
                assert len(node.children) == 2
            assert node.assembly == wfcoal.Assembly.full(20)
        assert history.pool == [2 * n - 2]
        assert history.root == 2 * n - 2

    def test_single_coalescence(self):
        history = wfcoal.sim_ancestry(
            2, population_size=10, genome_length=1, random_seed=5
        )
        assert history.num_events == 1
        (event,) = history.events
        assert event.type == wfcoal.EventType.COALESCENCE
        assert event.participants == [2]
        assert history.nodes[2].children in ([0, 1], [1, 0])
        assert event.time > 0

    def test_single_sample(self):
        history = wfcoal.sim_ancestry(1, population_size=10, genome_length=5)
        assert history.num_events == 0
        assert history.num_nodes == 1
        assert history.root == 0
        assert len(history.waiting_times()) == 0

    def test_pool_sizes(self):
        history = wfcoal.sim_ancestry(
            20, population_size=100, genome_length=5, random_seed=2
        )
        sizes = tests.pool_sizes(history)
        assert list(sizes) == list(range(19, 0, -1))


class TestTransfer:
    def test_pool_size_changes(self):
        for seed in range(1, 20):
            history = wfcoal.sim_ancestry(
                8,
                population_size=50,
                genome_length=40,
                transfer_rate=0.0003,
                fragment_length=7,
                random_seed=seed,
            )
            sizes = np.concatenate([[8], tests.pool_sizes(history)])
            for event, before, after in zip(history.events, sizes[:-1], sizes[1:]):
                if event.type == wfcoal.EventType.COALESCENCE:
                    assert after == before - 1
                else:
                    assert after - before in (0, 1)
            assert np.all(sizes <= 50)
            assert sizes[-1] == 1

    def test_derived_nodes_partition_child(self):
        history = tests.transfer_history()
        for event in history.events:
            if event.type != wfcoal.EventType.TRANSFER:
                continue
            children = {tuple(history.nodes[u].children) for u in event.participants}
            assert len(children) == 1
            ((child,),) = children
            union = wfcoal.Assembly()
            total = 0
            for u in event.participants:
                node = history.nodes[u]
                assert len(node.assembly) > 0
                assert node.time == event.time
                union = wfcoal.merge(union, node.assembly)
                total += node.assembly.num_positions
            assert union == history.nodes[child].assembly
            assert total == union.num_positions

    def test_root_covers_genome(self):
        history = tests.transfer_history()
        assert history.nodes[history.root].assembly == wfcoal.Assembly.full(50)

    def test_events_monotonic(self):
        history = tests.transfer_history()
        times = [e.time for e in history.events]
        assert times == sorted(times)
        np.testing.assert_allclose(np.cumsum(history.waiting_times()), times)
        assert np.all(history.waiting_times() > 0)

    def test_each_node_consumed_once(self):
        history = tests.transfer_history(10)
        parents = {}
        for u, node in enumerate(history.nodes):
            for child in set(node.children):
                parents.setdefault(child, set()).add(u)
        for u in range(history.num_nodes):
            if u == history.root:
                assert u not in parents
            else:
                # Either one coalescence parent or a set of transfer nodes.
                owners = parents[u]
                assert len(owners) in (1, 2)

    def test_sample_fills_population(self):
        for seed in range(1, 51):
            history = wfcoal.sim_ancestry(
                10,
                population_size=10,
                genome_length=1000,
                transfer_rate=1e-4,
                fragment_length=100,
                random_seed=seed,
            )
            assert history.pool == [history.root]
            assert np.max(tests.pool_sizes(history)) <= 10

    def test_small_population_high_transfer(self):
        for seed in range(1, 21):
            history = wfcoal.sim_ancestry(
                2,
                population_size=2,
                genome_length=10,
                transfer_rate=1,
                fragment_length=3,
                random_seed=seed,
            )
            assert history.num_events == 1
            assert history.events[0].type == wfcoal.EventType.COALESCENCE

    def test_debug(self):
        history = wfcoal.sim_ancestry(
            6,
            population_size=30,
            genome_length=25,
            transfer_rate=0.0005,
            fragment_length=4,
            random_seed=12,
            debug=True,
        )
        assert history.pool == [history.root]


class TestSimulatorEvents:
    def make_simulator(self, **kwargs):
        params = dict(sample_size=2, population_size=10, genome_length=10)
        params.update(kwargs)
        parameters = ancestry._parse_population_parameters(**params)
        return ancestry.Simulator(
            parameters, core.make_random_generator(1), random_seed=1
        )

    def test_common_ancestor_event(self):
        sim = self.make_simulator()
        (u,) = sim.common_ancestor_event()
        assert u == 2
        assert sorted(sim.nodes[u].children) == [0, 1]
        assert sim.pool == [2]
        sim.verify()

    def test_transfer_event_splits_full_genome(self):
        sim = self.make_simulator(transfer_rate=0.01, fragment_length=4)
        derived = sim.transfer_event()
        assert len(derived) == 2
        own, donated = (sim.nodes[u].assembly for u in derived)
        assert donated.num_positions == 4
        assert own.num_positions == 6
        assert len(sim.pool) == 3
        sim.verify()

    def test_transfer_event_overflows_population(self):
        sim = self.make_simulator(
            sample_size=2, population_size=2, transfer_rate=0.01, fragment_length=3
        )
        with pytest.raises(exceptions.InvariantError, match="population size"):
            sim.transfer_event()

    def test_next_event_full_pool(self):
        sim = self.make_simulator(
            sample_size=2, population_size=2, transfer_rate=1, fragment_length=3
        )
        for _ in range(50):
            _, event_type = sim.next_event()
            assert event_type == wfcoal.EventType.COALESCENCE

    def test_next_event_below_population_size(self):
        sim = self.make_simulator(
            sample_size=2, population_size=3, transfer_rate=1, fragment_length=3
        )
        event_types = {sim.next_event()[1] for _ in range(50)}
        assert wfcoal.EventType.TRANSFER in event_types

    def test_verify_duplicate_pool(self):
        sim = self.make_simulator()
        sim.pool = [0, 0]
        with pytest.raises(exceptions.InvariantError):
            sim.verify()

    def test_verify_consumed_in_pool(self):
        sim = self.make_simulator()
        sim.common_ancestor_event()
        sim.pool.append(0)
        with pytest.raises(exceptions.InvariantError):
            sim.verify()

    def test_next_event_no_transfer(self):
        sim = self.make_simulator()
        for _ in range(10):
            waiting_time, event_type = sim.next_event()
            assert waiting_time > 0
            assert event_type == wfcoal.EventType.COALESCENCE


class TestRandomSeeds:
    def test_same_seed_same_history(self):
        h1 = tests.transfer_history(6)
        h2 = tests.transfer_history(6)
        assert h1.asdict() == h2.asdict()

    def test_different_seeds(self):
        h1 = wfcoal.sim_ancestry(10, population_size=100, genome_length=5, random_seed=1)
        h2 = wfcoal.sim_ancestry(10, population_size=100, genome_length=5, random_seed=2)
        assert h1.asdict() != h2.asdict()

    def test_seed_recorded(self):
        history = wfcoal.sim_ancestry(2, population_size=10, genome_length=5)
        assert 1 <= history.random_seed <= core.MAX_SEED
        h2 = wfcoal.sim_ancestry(
            2, population_size=10, genome_length=5, random_seed=history.random_seed
        )
        assert history.asdict() == h2.asdict()


class TestReplicates:
    def test_num_replicates(self):
        replicates = wfcoal.sim_ancestry(
            4, population_size=50, genome_length=5, num_replicates=5, random_seed=3
        )
        histories = list(replicates)
        assert len(histories) == 5
        seeds = [h.random_seed for h in histories]
        assert len(set(seeds)) == 5
        times = [h.events[-1].time for h in histories]
        assert len(set(times)) == 5

    def test_replicates_reproducible(self):
        def run():
            return [
                h.asdict()
                for h in wfcoal.sim_ancestry(
                    4,
                    population_size=50,
                    genome_length=5,
                    num_replicates=3,
                    random_seed=3,
                )
            ]

        assert run() == run()

    def test_replicate_matches_single_run(self):
        histories = list(
            wfcoal.sim_ancestry(
                4, population_size=50, genome_length=5, num_replicates=3, random_seed=3
            )
        )
        single = wfcoal.sim_ancestry(
            4, population_size=50, genome_length=5, random_seed=histories[1].random_seed
        )
        assert single.asdict() == histories[1].asdict()


class TestEvolutionHistory:
    def test_asdict_round_trip(self, transfer_history_fixture):
        d = transfer_history_fixture.asdict()
        assert d["format_name"] == wfcoal.EvolutionHistory.FORMAT_NAME
        assert d["format_version"] == wfcoal.EvolutionHistory.FORMAT_VERSION
        copy = wfcoal.EvolutionHistory.fromdict(d)
        assert copy == transfer_history_fixture

    def test_samples(self, transfer_history_fixture):
        assert transfer_history_fixture.samples == [0, 1, 2, 3, 4]
        assert transfer_history_fixture.genome_length == 50

    def test_incomplete_root(self, transfer_history_fixture):
        d = transfer_history_fixture.asdict()
        d["pool"] = [0, 1]
        with pytest.raises(ValueError):
            wfcoal.EvolutionHistory.fromdict(d).root


class TestTreeSequenceExport:
    def test_no_transfer_single_tree(self):
        n = 8
        history = wfcoal.sim_ancestry(
            n, population_size=100, genome_length=30, random_seed=4
        )
        ts = history.tree_sequence()
        assert ts.num_samples == n
        assert ts.sequence_length == 30
        assert ts.num_nodes == 2 * n - 1
        assert ts.num_trees == 1
        tree = ts.first()
        assert tree.num_roots == 1
        assert tree.root == history.root
        assert ts.node(tree.root).time == history.nodes[history.root].time
        for u in range(n, 2 * n - 1):
            assert ts.node(u).flags == wfcoal.NodeType.COMMON_ANCESTOR.value

    def test_transfer_arg(self):
        history = tests.transfer_history(6)
        ts = history.tree_sequence()
        assert ts.num_samples == 6
        assert ts.num_nodes == history.num_nodes
        for tree in ts.trees():
            assert tree.num_roots == 1
            assert tree.root == history.root
        num_transfer_nodes = sum(
            len(e.participants)
            for e in history.events
            if e.type == wfcoal.EventType.TRANSFER
        )
        flags = ts.tables.nodes.flags
        assert np.sum(flags == wfcoal.NodeType.TRANSFER.value) == num_transfer_nodes

    def test_samples_flagged(self, transfer_history_fixture):
        ts = transfer_history_fixture.tree_sequence()
        assert list(ts.samples()) == transfer_history_fixture.samples
        for u in ts.samples():
            assert ts.node(u).flags == tskit.NODE_IS_SAMPLE

    def test_provenance(self, transfer_history_fixture):
        tables = transfer_history_fixture.dump_tables()
        assert tables.provenances.num_rows == 1
        tables = transfer_history_fixture.dump_tables(record_provenance=False)
        assert tables.provenances.num_rows == 0
