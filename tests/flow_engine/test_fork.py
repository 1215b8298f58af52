"""Unit tests for parallel_each: fork/join with ordered results."""

from __future__ import annotations

import pytest

from stepflow import Flow, WorkerContext, flow, parallel_each


def forward(ctx, *args):
    ctx.next(*args)


def fork_names(ctx):
    ctx.fork("LICENSE", "README.md")


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestForkOrdering:
    def test_results_follow_fork_order_not_join_order(self, files):
        seen = []

        def measure(wctx, name):
            files.read(name, lambda err, text: wctx.join(len(text)))

        def finish(ctx, err, results):
            seen.append((err, results))

        parallel_each(fork_names, measure, finish)()
        files.complete_all(reverse=True)
        assert seen == [(None, [3, 8])]

    def test_synchronous_workers(self):
        seen = []

        def begin(ctx, *words):
            ctx.fork(*words)

        def upper(wctx, word):
            wctx.join(word.upper())

        parallel_each(begin, upper, lambda ctx, err, results: seen.append(results))(
            "a", "b", "c"
        )
        assert seen == [["A", "B", "C"]]

    def test_finish_waits_for_last_join(self, files):
        seen = []

        def measure(wctx, name):
            files.read(name, wctx.callback)

        parallel_each(fork_names, measure, lambda ctx, err, r: seen.append(r))()
        files.complete(0)
        assert seen == []
        files.complete(0)
        assert seen == [["MIT", "# readme"]]

    def test_zero_items_finish_immediately(self):
        seen = []

        def begin(ctx):
            ctx.fork()

        def worker(wctx, item):
            pytest.fail("no worker expected")

        parallel_each(begin, worker, lambda ctx, err, r: seen.append((err, r)))()
        assert seen == [(None, [])]

    def test_duplicate_join_counts_once(self):
        seen = []
        workers = []

        def begin(ctx):
            ctx.fork(1, 2)

        def worker(wctx, item):
            workers.append(wctx)

        parallel_each(begin, worker, lambda ctx, err, r: seen.append(r))()
        workers[0].join("first")
        workers[0].join("again")
        assert seen == []
        workers[1].join("second")
        assert seen == [["first", "second"]]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestForkFailures:
    def test_worker_end_runs_finish_early(self, files):
        seen = []

        def begin(ctx):
            ctx.fork("LICENSE", "missing", "README.md")

        def measure(wctx, name):
            files.read(name, wctx.callback)

        parallel_each(begin, measure, lambda ctx, err, r: seen.append((err, r)))()
        files.complete(1)
        assert len(seen) == 1
        err, results = seen[0]
        assert isinstance(err, FileNotFoundError)
        assert results == [None, None, None]

        files.complete_all()
        assert len(seen) == 1

    def test_synchronous_failure_stops_dispatch(self):
        started = []
        seen = []

        def begin(ctx):
            ctx.fork("a", "b", "c")

        def worker(wctx, item):
            started.append(item)
            if item == "b":
                wctx.end("bad item")
            else:
                wctx.join(item)

        parallel_each(begin, worker, lambda ctx, err, r: seen.append((err, r)))()
        assert started == ["a", "b"]
        assert seen == [("bad item", ["a", None, None])]

    def test_begin_end_skips_workers(self):
        seen = []

        def begin(ctx):
            ctx.end("no input")

        def worker(wctx, item):
            pytest.fail("no worker expected")

        parallel_each(begin, worker, lambda ctx, err, r: seen.append((err, r)))()
        assert seen == [("no input", [])]


# ---------------------------------------------------------------------------
# Worker context & composition
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestForkComposition:
    def test_worker_context_surface(self):
        seen = []

        def begin(ctx):
            ctx.data = {"seen": []}
            ctx.fork("x", "y")

        def worker(wctx, item):
            assert isinstance(wctx, WorkerContext)
            wctx.data["seen"].append((wctx.index, wctx.item, item))
            wctx.join()

        def finish(ctx, err, results):
            seen.extend(ctx.data["seen"])
            assert ctx.fork_state is None

        parallel_each(begin, worker, finish)()
        assert seen == [(0, "x", "x"), (1, "y", "y")]

    def test_parallel_each_runs_standalone(self):
        seen = []

        def begin(ctx):
            ctx.fork(10, 20)

        def worker(wctx, item):
            wctx.join(item + 1)

        def finish(ctx, err, results):
            seen.append(results)
            ctx.next(sum(results))

        f = parallel_each(begin, worker, finish)
        assert isinstance(f, Flow)
        assert f.name == "parallel_each"
        result = f.run()
        assert seen == [[11, 21]]
        assert result.args == (32,)

    def test_used_as_step_of_outer_flow(self, files):
        seen = []

        def begin(ctx, *names):
            ctx.fork(*names)

        def measure(wctx, name):
            files.read(name, lambda err, text: wctx.join(len(text)))

        def finish(ctx, err, results):
            ctx.next(results)

        def report(ctx, results):
            seen.append((ctx.err, results))

        outer = flow(
            lambda ctx: ctx.next("file1", "README.md"),
            parallel_each(begin, measure, finish, name="lengths"),
            report,
        )
        outer()
        files.complete_all(reverse=True)
        assert seen == [(None, [5, 8])]

    def test_worker_error_propagates_through_outer_flow(self):
        seen = []

        def begin(ctx):
            ctx.fork(1)

        def worker(wctx, item):
            wctx.callback(ValueError("bad"))

        def finish(ctx, err, results):
            ctx.next()

        outer = flow(
            parallel_each(begin, worker, finish),
            forward,
            lambda ctx: seen.append(ctx.err),
        )
        outer()
        assert isinstance(seen[0], ValueError)
