import pytest

from schedviz.analytics.comparison import INSUFFICIENT_DATA, ComparisonAnalytics, MetricSpec
from schedviz.store.entities import AlgorithmRunResult
from schedviz.store.parsing import parse_statistics_bundle


def _run(algorithm, **stats):
    return AlgorithmRunResult(
        id=f"run-{algorithm}",
        algorithm=algorithm,
        processes=(),
        statistics=parse_statistics_bundle(stats),
        timestamp=0,
    )


def test_best_and_overall_prefer_lower_waiting_and_higher_utilization():
    runs = [
        _run("A", avgWaitingTime="10", cpuUtilization="50"),
        _run("B", avgWaitingTime="5", cpuUtilization="80"),
    ]
    summary = ComparisonAnalytics().summarize(runs)

    assert summary.sufficient
    assert summary.best["avgWaitingTime"].algorithm == "B"
    assert summary.best["cpuUtilization"].algorithm == "B"
    scores = {r.algorithm: r.score for r in summary.ranking}
    assert scores["B"] > scores["A"]
    assert summary.winner.algorithm == "B"
    assert summary.ranking[0].percentage == pytest.approx(40.0)


def test_single_run_reports_insufficient_data():
    summary = ComparisonAnalytics().summarize([_run("A", avgWaitingTime="3")])

    assert not summary.sufficient
    assert summary.reason == INSUFFICIENT_DATA
    assert summary.best == {}
    assert summary.ranking == []
    assert summary.winner is None
    assert summary.projections[0].values["avgWaitingTime"] == 3.0


def test_no_runs_reports_insufficient_data():
    summary = ComparisonAnalytics().summarize([])

    assert not summary.sufficient
    assert summary.projections == []


def test_identical_metric_contributes_zero():
    runs = [
        _run("A", avgWaitingTime="7", cpuUtilization="40"),
        _run("B", avgWaitingTime="7", cpuUtilization="60"),
    ]
    ranking = ComparisonAnalytics().rank(ComparisonAnalytics().project(runs))

    for ranked in ranking:
        assert ranked.contributions["avgWaitingTime"] == 0.0


def test_best_tie_keeps_first_seen():
    runs = [
        _run("A", cpuUtilization="90", avgWaitingTime="2"),
        _run("B", cpuUtilization="90", avgWaitingTime="2"),
    ]
    summary = ComparisonAnalytics().summarize(runs)

    assert summary.best["cpuUtilization"].algorithm == "A"
    assert summary.best["avgWaitingTime"].algorithm == "A"
    assert [r.algorithm for r in summary.ranking] == ["A", "B"]


def test_missing_values_are_skipped_for_best_and_score_zero():
    runs = [
        _run("A", avgWaitingTime="4"),
        _run("B", avgWaitingTime="8", throughput="0.5"),
    ]
    summary = ComparisonAnalytics().summarize(runs)

    assert summary.best["throughput"].algorithm == "B"
    assert "cpuUtilization" not in summary.best
    a = next(r for r in summary.ranking if r.algorithm == "A")
    assert a.contributions["throughput"] == 0.0
    assert a.contributions["avgWaitingTime"] == 1.0


def test_ranking_over_all_default_metrics():
    runs = [
        _run("FCFS", cpuUtilization="80", avgWaitingTime="6", avgTurnaroundTime="10", avgResponseTime="6", throughput="0.2"),
        _run("SJF", cpuUtilization="80", avgWaitingTime="3", avgTurnaroundTime="7", avgResponseTime="3", throughput="0.3"),
        _run("RR", cpuUtilization="90", avgWaitingTime="5", avgTurnaroundTime="9", avgResponseTime="1", throughput="0.2"),
    ]
    summary = ComparisonAnalytics().summarize(runs)

    assert summary.best["cpuUtilization"].algorithm == "RR"
    assert summary.best["avgWaitingTime"].algorithm == "SJF"
    assert summary.best["avgResponseTime"].algorithm == "RR"
    assert summary.best["throughput"].algorithm == "SJF"
    assert summary.winner.algorithm == "SJF"
    assert summary.ranking[-1].algorithm == "FCFS"
    assert summary.ranking[-1].score == pytest.approx(0.0)


def test_weights_change_the_overall_winner():
    metrics = (
        MetricSpec("avgWaitingTime", "Avg Waiting Time", "ms", higher_is_better=False, weight=3.0),
        MetricSpec("cpuUtilization", "CPU Utilization", "%", higher_is_better=True, weight=1.0),
    )
    runs = [
        _run("A", avgWaitingTime="2", cpuUtilization="50"),
        _run("B", avgWaitingTime="4", cpuUtilization="90"),
    ]
    summary = ComparisonAnalytics(metrics).summarize(runs)

    assert summary.winner.algorithm == "A"
    assert summary.winner.score == pytest.approx(3.0)
    assert summary.winner.percentage == pytest.approx(75.0)


def test_summary_payload_is_serializable():
    runs = [_run("A", avgWaitingTime="10"), _run("B", avgWaitingTime="5")]
    payload = ComparisonAnalytics().summarize(runs).to_payload()

    assert payload["winner"] == "B"
    assert payload["best"]["avgWaitingTime"] == {"algorithm": "B", "value": 5.0}
    assert payload["projections"][0]["algorithm"] == "A"


def test_metric_set_must_not_be_empty():
    with pytest.raises(ValueError):
        ComparisonAnalytics(metrics=())
