from schedviz.ids import IdGenerator
from schedviz.store.entities import AlgorithmRunResult, StatisticsBundle
from schedviz.store.reconciler import StateReconciler
from schedviz.store.results import ResultStore


def _store():
    return ResultStore(id_generator=IdGenerator("test"), clock=lambda: 1234)


def _run(run_id, algorithm, waiting="1.00"):
    return AlgorithmRunResult(
        id=run_id,
        algorithm=algorithm,
        processes=(),
        statistics=StatisticsBundle(avg_waiting_time=waiting),
        timestamp=0,
    )


def test_add_result_replaces_same_algorithm():
    store = _store()
    first = _run("r1", "FCFS", waiting="4.00")
    second = _run("r2", "FCFS", waiting="2.00")

    store.add_result(first)
    store.add_result(second)

    assert len(store) == 1
    assert store.get_by_algorithm("FCFS") == second
    assert store.results == (second,)


def test_replacement_keeps_insertion_position():
    store = _store()
    store.add_result(_run("r1", "FCFS"))
    store.add_result(_run("r2", "SJF"))
    store.add_result(_run("r3", "RR"))
    store.add_result(_run("r4", "SJF"))

    assert store.algorithms() == ["FCFS", "SJF", "RR"]
    assert store.get_by_algorithm("SJF").id == "r4"


def test_clear_removes_everything():
    store = _store()
    store.add_result(_run("r1", "FCFS"))
    store.add_result(_run("r2", "SJF"))
    store.clear()

    assert len(store) == 0
    assert store.get_by_algorithm("FCFS") is None


def test_record_completion_builds_run():
    store = _store()
    run = store.record_completion(
        "RR",
        {
            "results": [{"id": "1", "name": "P1", "burstTime": 3, "remainingTime": 0}],
            "statistics": {"totalProcesses": 1, "totalTime": 3, "cpuUtilization": "100", "throughput": 0.3333},
        },
    )

    assert run.id == "run-test-1"
    assert run.algorithm == "RR"
    assert run.timestamp == 1234
    assert run.processes[0].state == "terminated"
    assert run.statistics.cpu_utilization == "100.00"
    assert run.statistics.throughput == "0.33"
    assert store.results == (run,)


def test_record_completion_drops_malformed_payloads():
    store = _store()

    assert store.record_completion("RR", {"results": []}) is None
    assert store.record_completion("RR", {"statistics": {}}) is None
    assert store.record_completion("RR", None) is None
    assert len(store) == 0


def test_record_completion_uses_reconciler_sanitizer():
    ids = IdGenerator("test")
    store = ResultStore(id_generator=ids, clock=lambda: 0)
    reconciler = StateReconciler(id_generator=ids)
    run = store.record_completion(
        "FCFS",
        {"results": [{"id": "1"}, {"id": "1"}, {"name": "anon"}], "statistics": {}},
        sanitize=reconciler.sanitize_processes,
    )
    ids_seen = [p.id for p in run.processes]

    assert ids_seen[0] == "1"
    assert len(set(ids_seen)) == 3


def test_listeners_see_each_registry_version():
    store = _store()
    seen = []
    unsubscribe = store.subscribe(seen.append)

    store.add_result(_run("r1", "FCFS"))
    store.clear()
    unsubscribe()
    store.add_result(_run("r2", "SJF"))

    assert [len(results) for results in seen] == [1, 0]
