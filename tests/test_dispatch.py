"""Bounded dispatch backends."""

from __future__ import annotations

import threading

import pytest

from gallery_studio.config import Settings
from gallery_studio.dispatch import CeleryDispatcher, InlineDispatcher, ThreadDispatcher, build_dispatcher
from gallery_studio.errors import QueueFullError
from gallery_studio.jobs import PhotoJob


def _job(photo_id: str) -> PhotoJob:
    return PhotoJob(photo_id=photo_id, gallery_id="g", temp_path=f"/nonexistent/{photo_id}", filename="a.jpg")


def test_build_dispatcher_follows_backend(settings: Settings) -> None:
    """The configured backend selects the dispatcher implementation."""

    settings.queues.backend = "inline"
    assert isinstance(build_dispatcher(settings), InlineDispatcher)

    settings.queues.backend = "celery"
    assert isinstance(build_dispatcher(settings), CeleryDispatcher)

    settings.queues.backend = "thread"
    dispatcher = build_dispatcher(settings)
    assert isinstance(dispatcher, ThreadDispatcher)
    dispatcher.shutdown()


def test_inline_dispatcher_runs_in_caller_thread(settings: Settings) -> None:
    """Inline dispatch runs the job before ``submit`` returns."""

    ran: list[tuple[str, str]] = []

    def runner(job, run_settings, pipeline) -> None:
        ran.append((job.photo_id, threading.current_thread().name))

    InlineDispatcher(settings, runner=runner).submit(_job("p1"))

    assert ran == [("p1", threading.current_thread().name)]


def test_thread_dispatcher_rejects_when_full(settings: Settings) -> None:
    """A saturated thread pool raises QueueFullError instead of blocking."""

    release = threading.Event()
    started = threading.Event()

    def runner(job, run_settings, pipeline) -> None:
        started.set()
        release.wait(5)

    dispatcher = ThreadDispatcher(settings, max_workers=1, max_pending=1, submit_timeout=0.05, runner=runner)
    try:
        dispatcher.submit(_job("p1"))
        assert started.wait(5)
        assert dispatcher.in_flight == 1

        with pytest.raises(QueueFullError):
            dispatcher.submit(_job("p2"))
    finally:
        release.set()
        dispatcher.shutdown(wait=True)

    assert dispatcher.in_flight == 0


def test_thread_dispatcher_survives_runner_errors(settings: Settings) -> None:
    """A job that raises does not take down the worker threads."""

    done = threading.Event()
    calls: list[str] = []

    def runner(job, run_settings, pipeline) -> None:
        calls.append(job.photo_id)
        if job.photo_id == "bad":
            raise RuntimeError("boom")
        done.set()

    dispatcher = ThreadDispatcher(settings, max_workers=1, max_pending=1, submit_timeout=5, runner=runner)
    dispatcher.submit(_job("bad"))
    dispatcher.submit(_job("good"))
    assert done.wait(5)
    dispatcher.shutdown(wait=True)

    assert calls == ["bad", "good"]
    assert dispatcher.in_flight == 0
