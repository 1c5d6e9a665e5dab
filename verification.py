"""
Script to automate verification of wfcoal against known statistical
results and the forward-time population simulator.

Tests are structured in a similar way to Python unittests. Tests
are organised into classes of similar tests. Ideally, each test
in the class is a simple call to a general method with
different parameters (this is called ``_run``, by convention).
Tests must be *independent* and not depend on any shared
state within the test class, other than the ``self.output_dir``
variable which is guaranteed to be set when the method is called.

The output directory is <output-dir>/<class name>/<test name>.
Each test should output one or more diagnostic plots, which have
a clear interpretation as "correct" or "incorrect". QQ-plots
are preferred, where possible. Numerical results are output
using ``logging.info()``.

To run the tests, first get some help from the CLI:

    python3 verification.py --help

Use

    python3 verification.py --list

to show all the available tests. If you run without any arguments, this
will run all the tests sequentially; use ``-t`` to run over multiple
processes and ``-c`` to run all tests in a given class.
"""
import argparse
import concurrent.futures
import inspect
import logging
import pathlib
import sys

import attr
import daiquiri
import matplotlib
import numpy as np
import pandas as pd
import scipy.stats
import tqdm

import wfcoal

# Force matplotlib to not use any Xwindows backend.
matplotlib.use("Agg")
from matplotlib import pyplot  # noqa: E402


def plot_qq(v1, v2, v1_name, v2_name):
    quantiles = np.linspace(0.01, 0.99, 99)
    q1 = np.quantile(v1, quantiles)
    q2 = np.quantile(v2, quantiles)
    pyplot.plot(q1, q2, "o", markersize=3)
    lim = [min(q1[0], q2[0]), max(q1[-1], q2[-1])]
    pyplot.plot(lim, lim, "--", color="grey")
    pyplot.xlabel(v1_name)
    pyplot.ylabel(v2_name)


def plot_stat_hist(v1, v2, v1_name, v2_name):
    bins = np.histogram_bin_edges(np.concatenate([v1, v2]), bins=30)
    pyplot.hist(v1, bins=bins, alpha=0.5, density=True, label=v1_name)
    pyplot.hist(v2, bins=bins, alpha=0.5, density=True, label=v2_name)
    pyplot.legend(loc="upper right")


def coalescent_divergence(num_replicates, **kwargs):
    """
    Returns the pairwise divergence of two genomes simulated under the
    coalescent for each replicate.
    """
    L = kwargs["genome_length"]
    return np.array(
        [
            wfcoal.pairwise_distances(result.sequences)[0] / L
            for result in wfcoal.simulate(2, num_replicates=num_replicates, **kwargs)
        ]
    )


def forward_samples(
    num_populations,
    samples_per_population,
    burn_in,
    interval,
    sample_size=2,
    **kwargs,
):
    """
    Evolves a set of independent forward-time populations and returns the
    samples taken from them once they have reached equilibrium.
    """
    seeds = wfcoal.core.spawn_seeds(kwargs.pop("random_seed"), num_populations)
    samples = []
    for seed in seeds:
        population = wfcoal.SequencePopulation(random_seed=seed, **kwargs)
        population.evolve(burn_in)
        for _ in range(samples_per_population):
            population.evolve(interval)
            samples.append(population.sample(sample_size))
    return samples


@attr.s
class Test:
    """
    The superclass of all tests. The only attribute defined is the output
    directory for the test, which is guaranteed to exist when the
    test method is called.
    """

    output_dir = attr.ib(type=str, default=None)

    def _build_filename(self, *args):
        return self.output_dir / "_".join(args)

    def _plot_stats(self, df, stat, model1, model2):
        v1 = df[df.model == model1][stat].to_numpy()
        v2 = df[df.model == model2][stat].to_numpy()
        result = scipy.stats.ks_2samp(v1, v2)
        logging.info(
            f"{stat}: {model1} mean={np.mean(v1):.4g} {model2} mean={np.mean(v2):.4g} "
            f"KS p-value={result.pvalue:.3g}"
        )
        plot_qq(v1, v2, model1, model2)
        pyplot.savefig(self._build_filename(stat, "qq.png"), dpi=72)
        pyplot.close("all")
        plot_stat_hist(v1, v2, model1, model2)
        pyplot.savefig(self._build_filename(stat, "hist.png"), dpi=72)
        pyplot.close("all")


class DivergenceAnalytical(Test):
    """
    Compare the mean pairwise divergence under the coalescent with the
    analytical expectation.
    """

    def _run(self, N, u, L=100, num_replicates=2000):
        divergence = coalescent_divergence(
            num_replicates,
            population_size=N,
            genome_length=L,
            mutation_rate=u,
            random_seed=1,
        )
        expected = wfcoal.expected_divergence(N, u, 0, 0)
        stderr = np.std(divergence) / np.sqrt(num_replicates)
        logging.info(
            f"N={N} u={u}: observed={np.mean(divergence):.4g} +- {stderr:.2g} "
            f"expected={expected:.4g}"
        )
        pyplot.hist(divergence, bins=30, density=True)
        pyplot.axvline(expected, color="red", label="expected")
        pyplot.axvline(np.mean(divergence), color="black", label="observed")
        pyplot.legend(loc="upper right")
        pyplot.xlabel("divergence")
        pyplot.savefig(self._build_filename("divergence.png"), dpi=72)
        pyplot.close("all")

    def test_divergence_small_theta(self):
        self._run(N=100, u=1e-4)

    def test_divergence_medium_theta(self):
        self._run(N=100, u=1e-3)

    def test_divergence_large_theta(self):
        self._run(N=500, u=1e-3)


class CoalescentVsForward(Test):
    """
    Compare the distribution of pairwise divergence between the coalescent
    and the forward-time simulator.
    """

    def _run(self, N, L, u, tau=0, f=None, num_populations=20, samples=50):
        kwargs = dict(
            population_size=N,
            genome_length=L,
            mutation_rate=u,
            transfer_rate=tau,
            fragment_length=f,
            random_seed=2,
        )
        logging.debug(f"Running: {kwargs}")
        data = {"model": [], "divergence": []}
        for divergence in coalescent_divergence(num_populations * samples, **kwargs):
            data["model"].append("coalescent")
            data["divergence"].append(divergence)
        for sample in forward_samples(
            num_populations, samples, burn_in=10 * N, interval=N, **kwargs
        ):
            data["model"].append("forward")
            data["divergence"].append(wfcoal.pairwise_distances(sample)[0] / L)
        df = pd.DataFrame(data)
        self._plot_stats(df, "divergence", "coalescent", "forward")

    def test_forward_no_transfer(self):
        self._run(N=100, L=200, u=1e-3)

    def test_forward_short_fragments(self):
        self._run(N=100, L=200, u=1e-3, tau=2.5e-5, f=10)

    def test_forward_long_fragments(self):
        self._run(N=100, L=200, u=1e-3, tau=2.5e-5, f=100)


class CovarianceVsForward(Test):
    """
    Compare the positional covariance of substitutions between the coalescent
    and the forward-time simulator.
    """

    def _covariances(self, samples, L, max_distance):
        rows = []
        for sample in samples:
            rows.extend(wfcoal.distance_matrix(sample))
        return wfcoal.CovarianceMatrix(rows, L).covariance(max_distance)

    def _run(self, N, L, u, tau, f, n=5, num_populations=10, samples=20):
        kwargs = dict(
            population_size=N,
            genome_length=L,
            mutation_rate=u,
            transfer_rate=tau,
            fragment_length=f,
            random_seed=3,
        )
        max_distance = min(L, 3 * f)
        coalescent = [
            result.sequences
            for result in wfcoal.simulate(
                n, num_replicates=num_populations * samples, **kwargs
            )
        ]
        forward = forward_samples(
            num_populations, samples, 10 * N, N, sample_size=n, **kwargs
        )
        covs = {
            "coalescent": self._covariances(coalescent, L, max_distance),
            "forward": self._covariances(forward, L, max_distance),
        }
        for stat in ["scovs", "rcovs"]:
            for model, cov in covs.items():
                pyplot.plot(getattr(cov, stat), label=model)
            pyplot.xlabel("distance")
            pyplot.ylabel(stat)
            pyplot.legend(loc="upper right")
            pyplot.savefig(self._build_filename(stat, "covariance.png"), dpi=72)
            pyplot.close("all")
            logging.info(
                f"{stat}[0]: coalescent={getattr(covs['coalescent'], stat)[0]:.4g} "
                f"forward={getattr(covs['forward'], stat)[0]:.4g}"
            )

    def test_covariance_transfer(self):
        self._run(N=100, L=200, u=1e-3, tau=2.5e-5, f=20)


###############################################
# Infrastructure for running the tests and CLI
###############################################


@attr.s
class TestInstance:
    """
    A single test instance, that consists of the test class and the test method
    name.
    """

    test_class = attr.ib()
    method_name = attr.ib()

    def run(self, basedir):
        logging.info(f"Running {self}")
        output_dir = pathlib.Path(basedir) / self.test_class / self.method_name
        output_dir.mkdir(parents=True, exist_ok=True)

        instance = getattr(sys.modules[__name__], self.test_class)(output_dir)
        method = getattr(instance, self.method_name)
        method()


@attr.s
class TestSuite:
    """
    Class responsible for registering all known tests.
    """

    tests = attr.ib(init=False, factory=dict)
    classes = attr.ib(init=False, factory=set)

    def register(self, test_class, method_name):
        test_instance = TestInstance(test_class, method_name)
        if method_name in self.tests:
            raise ValueError(f"Test name {method_name} already used.")
        self.tests[method_name] = test_instance
        self.classes.add(test_class)

    def get_tests(self, names=None, test_class=None):
        if names is not None:
            tests = [self.tests[name] for name in names]
        elif test_class is not None:
            tests = [
                test for test in self.tests.values() if test.test_class == test_class
            ]
        else:
            tests = list(self.tests.values())
        return tests


@attr.s
class TestRunner:
    """
    Class responsible for running test instances.
    """

    def __run_sequential(self, tests, basedir, progress):
        for test in tests:
            test.run(basedir)
            progress.update()

    def __run_parallel(self, tests, basedir, num_threads, progress):
        with concurrent.futures.ProcessPoolExecutor(
            max_workers=num_threads
        ) as executor:
            futures = [executor.submit(test.run, basedir) for test in tests]
            exception = None
            for future in concurrent.futures.as_completed(futures):
                exception = future.exception()
                if exception is not None:
                    logging.error("EXCEPTION:%s", exception)
                    break
                progress.update()
            if exception is not None:
                for future in futures:
                    future.cancel()
                raise exception

    def run(self, tests, basedir, num_threads, show_progress):
        progress = tqdm.tqdm(total=len(tests), disable=not show_progress)
        logging.info(f"running {len(tests)} tests using {num_threads} processes")
        if num_threads <= 1:
            self.__run_sequential(tests, basedir, progress)
        else:
            self.__run_parallel(tests, basedir, num_threads, progress)
        progress.close()


def setup_logging(args):
    log_level = "INFO"
    if args.quiet:
        log_level = "WARN"
    if args.debug:
        log_level = "DEBUG"

    daiquiri.setup(level=log_level)
    wfcoal_logger = daiquiri.getLogger("wfcoal")
    wfcoal_logger.setLevel("WARN")
    mpl_logger = daiquiri.getLogger("matplotlib")
    mpl_logger.setLevel("WARN")


def run_tests(suite, args):

    setup_logging(args)
    runner = TestRunner()

    if len(args.tests) > 0:
        tests = suite.get_tests(names=args.tests)
    elif args.test_class is not None:
        tests = suite.get_tests(test_class=args.test_class)
    else:
        tests = suite.get_tests()

    runner.run(tests, args.output_dir, args.num_threads, not args.no_progress)


def make_suite():
    suite = TestSuite()

    for cls_name, cls in inspect.getmembers(sys.modules[__name__]):
        if inspect.isclass(cls) and issubclass(cls, Test):
            test_class_instance = cls()
            for name, thing in inspect.getmembers(test_class_instance):
                if inspect.ismethod(thing):
                    if name.startswith("test_"):
                        suite.register(cls_name, name)
    return suite


def main():
    suite = make_suite()

    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--test-class",
        "-c",
        default=None,
        choices=sorted(suite.classes),
        help="Run all tests for specified test class",
    )
    parser.add_argument(
        "tests",
        nargs="*",
        help="Run specific tests. Use the --list option to see those available",
    )
    parser.add_argument(
        "--output-dir",
        "-d",
        type=str,
        default="tmp__NOBACKUP__",
        help="specify the base output directory",
    )
    parser.add_argument(
        "--num-threads", "-t", type=int, default=1, help="Specify number of threads"
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--quiet", "-q", action="store_true", help="Do not write any output"
    )
    group.add_argument(
        "--debug", "-D", action="store_true", help="Write out debug output"
    )
    parser.add_argument(
        "--no-progress", "-n", action="store_true", help="Do not show progress bar"
    )
    parser.add_argument(
        "--list", "-l", action="store_true", help="List available checks and exit"
    )
    args = parser.parse_args()
    if args.list:
        print("All available tests")
        for test in suite.tests.values():
            print(test.test_class, test.method_name, sep="\t")
    else:
        run_tests(suite, args)


if __name__ == "__main__":
    main()
