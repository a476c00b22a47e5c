"""Unit tests for scheduled job bookkeeping (trading.monitor) and its use by the engine."""

from datetime import datetime, timedelta, timezone

from algo_engine.core.config import Config
from algo_engine.core.errors import ExternalServiceError
from algo_engine.core.types import JobRunStatus
from algo_engine.execution.simulated import SimulatedBrokerClient
from algo_engine.trading.engine import POSITION_SYNC, TradingEngine
from algo_engine.trading.monitor import JobMonitor

START = datetime(2024, 3, 5, 15, 0, tzinfo=timezone.utc)


class StepClock:
    """Each call returns a time `step` later than the previous one."""

    def __init__(self, step_ms=500):
        self.now = START
        self.step = timedelta(milliseconds=step_ms)

    def __call__(self):
        current = self.now
        self.now += self.step
        return current


class BrokenBroker(SimulatedBrokerClient):
    def get_positions(self):
        raise ExternalServiceError(self.name, "positions unavailable", status_code=503, transient=True)


def test_completed_run_is_recorded(store):
    monitor = JobMonitor(store, StepClock(1500))
    execution = monitor.start("position_sync", {"trigger": "cron"})
    monitor.complete(execution, {"processed": 2})

    (run,) = monitor.history("position_sync")
    assert run.status is JobRunStatus.COMPLETED
    assert run.duration_ms == 1500
    assert run.metadata == {"trigger": "cron", "processed": 2}
    (job,) = monitor.stats()
    assert job.job == "position_sync"
    assert job.run_count == 1
    assert job.average_duration_ms == 1500
    assert job.last_status is JobRunStatus.COMPLETED


def test_average_duration_is_smoothed(store):
    clock = StepClock(1000)
    monitor = JobMonitor(store, clock)
    monitor.complete(monitor.start("snap"))
    clock.step = timedelta(milliseconds=2000)
    monitor.complete(monitor.start("snap"))
    assert store.jobs.get_job("snap").average_duration_ms == 1200
    assert [r.duration_ms for r in monitor.history("snap")] == [2000, 1000]


def test_failure_streak_holds_job_until_reset(store):
    monitor = JobMonitor(store, StepClock(), max_consecutive_failures=2)
    assert monitor.should_run("poll") is None
    for _ in range(3):
        monitor.fail(monitor.start("poll"), "broker down")
    job = store.jobs.get_job("poll")
    assert (job.failure_count, job.consecutive_failures) == (3, 3)
    assert job.last_error == "broker down"
    assert monitor.should_run("poll") == "too many consecutive failures"

    monitor.reset("poll")
    assert monitor.should_run("poll") is None
    monitor.complete(monitor.start("poll"))
    job = store.jobs.get_job("poll")
    assert (job.failure_count, job.consecutive_failures) == (3, 0)


def test_success_clears_failure_streak(store):
    monitor = JobMonitor(store, StepClock(), max_consecutive_failures=2)
    monitor.fail(monitor.start("poll"), "timeout")
    monitor.fail(monitor.start("poll"), "timeout")
    monitor.complete(monitor.start("poll"))
    monitor.fail(monitor.start("poll"), "timeout")
    assert store.jobs.get_job("poll").consecutive_failures == 1
    assert monitor.should_run("poll") is None


def test_disabled_job_is_held(store):
    monitor = JobMonitor(store)
    monitor.set_enabled("snap", False)
    assert monitor.should_run("snap") == "disabled"
    monitor.set_enabled("snap", True)
    assert monitor.should_run("snap") is None


def test_engine_records_each_run(store, broker, alerts):
    engine = TradingEngine(store, broker, alerts, clock=StepClock())
    result = engine.run_position_sync()
    (run,) = store.jobs.history(POSITION_SYNC)
    assert result.execution_id == run.id
    assert run.status is JobRunStatus.COMPLETED
    assert run.metadata["processed"] == 1


def test_engine_stops_running_a_failing_job(store, alerts):
    engine = TradingEngine(store, BrokenBroker(), alerts, clock=StepClock(), max_job_failures=1)
    first = engine.run_position_sync()
    second = engine.run_position_sync()
    assert (first.processed, first.succeeded) == (1, 0)
    assert not second.skipped
    assert [r.status for r in store.jobs.history(POSITION_SYNC)] == [JobRunStatus.FAILED, JobRunStatus.FAILED]

    third = engine.run_position_sync()
    assert third.skipped
    assert third.details["reason"] == "too many consecutive failures"
    assert len(store.jobs.history(POSITION_SYNC)) == 2


def test_from_config_applies_disabled_jobs_and_keeps_alerts(store, broker, alerts):
    config = Config(market_hours_only=False, disabled_jobs=[POSITION_SYNC])
    engine = TradingEngine.from_config(config, store, broker=broker, alerts=alerts)
    assert engine.alerts is alerts
    result = engine.run_position_sync()
    assert result.skipped
    assert result.details["reason"] == "disabled"
    assert not engine.run_portfolio_snapshot().skipped
