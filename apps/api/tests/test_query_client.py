"""
Query caching, invalidation and mutation toasts.
"""
import pytest

from hooks.query_client import QueryClient, QueryResult, Toaster


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def qc(clock):
    return QueryClient(stale_time=30.0, clock=clock)


class Counter:
    def __init__(self, value="data"):
        self.calls = 0
        self.value = value

    def __call__(self):
        self.calls += 1
        return self.value


class TestQueries:

    def test_fresh_query_is_served_from_cache(self, qc):
        fetch = Counter()
        assert qc.use_query(("students", "t1"), fetch).data == "data"
        assert qc.use_query(("students", "t1"), fetch).data == "data"
        assert fetch.calls == 1

    def test_stale_query_refetches(self, qc, clock):
        fetch = Counter()
        qc.use_query(("students", "t1"), fetch)
        clock.advance(30.0)
        qc.use_query(("students", "t1"), fetch)
        assert fetch.calls == 2

    def test_disabled_query_is_idle(self, qc):
        fetch = Counter()
        result = qc.use_query(("students", None), fetch, enabled=False)
        assert result.is_idle
        assert fetch.calls == 0

    def test_failed_query_is_not_cached(self, qc):
        def boom():
            raise RuntimeError("down")

        result = qc.use_query(("x",), boom)
        assert result.is_error
        assert qc.get_query_data(("x",)) is None
        with pytest.raises(RuntimeError):
            result.unwrap()

    def test_invalidate_by_prefix(self, qc):
        qc.set_query_data(("students", "t1"), 1)
        qc.set_query_data(("students", "t2"), 2)
        qc.set_query_data(("sessions", "t1"), 3)
        assert qc.invalidate_queries(("students",)) == 2
        assert qc.get_query_data(("students", "t1")) is None
        assert qc.get_query_data(("sessions", "t1")) == 3

    def test_empty_prefix_invalidates_everything(self, qc):
        qc.set_query_data(("a",), 1)
        qc.set_query_data(("b", 1), 2)
        assert qc.invalidate_queries(()) == 2


class TestMutations:

    def test_success_invalidates_and_toasts(self, qc):
        qc.set_query_data(("students", "t1"), ["old"])
        mutation = qc.use_mutation(lambda name: name.upper(), invalidates=(("students",),),
                                   success_toast="Student added")
        result = mutation.mutate("ana")
        assert result.is_success and result.data == "ANA"
        assert qc.get_query_data(("students", "t1")) is None
        assert qc.toaster.last().title == "Student added"
        assert mutation.last_result is result

    def test_failure_keeps_cache_and_shows_destructive_toast(self, qc):
        qc.set_query_data(("students", "t1"), ["old"])

        def fail():
            raise ValueError("limit reached")

        mutation = qc.use_mutation(fail, invalidates=(("students",),), error_toast="Could not add student")
        result = mutation.mutate()
        assert result.is_error
        assert qc.get_query_data(("students", "t1")) == ["old"]
        toast = qc.toaster.last()
        assert toast.variant == "destructive"
        assert toast.description == "limit reached"

    def test_mutate_or_raise_propagates(self, qc):
        def fail():
            raise ValueError("nope")

        with pytest.raises(ValueError):
            qc.use_mutation(fail).mutate_or_raise()

    def test_on_success_callback(self, qc):
        seen = []
        qc.use_mutation(lambda: 5, on_success=seen.append).mutate()
        assert seen == [5]


class TestToaster:

    def test_keeps_bounded_history(self):
        toaster = Toaster()
        for i in range(Toaster.MAX_TOASTS + 5):
            toaster.success(f"t{i}")
        assert len(toaster.toasts) == Toaster.MAX_TOASTS
        assert toaster.last().title == f"t{Toaster.MAX_TOASTS + 4}"

    def test_clear_client_drops_cache_and_toasts(self, qc):
        qc.set_query_data(("a",), 1)
        qc.toaster.success("hi")
        qc.clear()
        assert qc.get_query_data(("a",)) is None
        assert qc.toaster.last() is None


def test_query_result_defaults_idle():
    result = QueryResult()
    assert result.is_idle and result.unwrap() is None
