"""
Background Task Tests
=====================
Archive dispatch through Celery or the thread fallback.
"""

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

import tasks
from services.signing.records import Agreement, AgreementDocument


class FakeTask:
    def __init__(self):
        self.queued = []

    def delay(self, *args):
        self.queued.append(args)


class ImmediateThread:
    """Runs the target on start()."""

    def __init__(self, target, args=(), daemon=None):
        self.target, self.args = target, args

    def start(self):
        self.target(*self.args)


def test_dispatch_uses_celery_when_redis_answers(monkeypatch):
    fake = FakeTask()
    monkeypatch.setattr(tasks, "get_task_mode", lambda: "celery")
    monkeypatch.setattr(tasks, "archive_agreement", fake)

    assert tasks.dispatch_archive(Agreement(id="ag1"), "final") == "celery"
    assert fake.queued == [("ag1", "final")]


def test_thread_fallback_logs_failures(monkeypatch):
    calls = []

    def failing_archive(agreement_id, reason):
        calls.append((agreement_id, reason))
        raise RuntimeError("graph unavailable")

    monkeypatch.setattr(tasks, "get_task_mode", lambda: "thread")
    monkeypatch.setattr(tasks, "run_archive", failing_archive)
    monkeypatch.setattr(tasks.threading, "Thread", ImmediateThread)

    assert tasks.dispatch_archive(Agreement(id="ag1"), "per_director") == "thread"
    assert calls == [("ag1", "per_director")]


def test_run_archive_loads_fresh_copy(monkeypatch, context):
    uploaded = []
    monkeypatch.setattr(tasks, "get_settings", lambda: context.settings)
    monkeypatch.setattr(tasks.GraphArchive, "archive_agreement", lambda self, agreement: uploaded.append(agreement.id))

    saved = context.agreements.create(Agreement(business_name="Acme", documents=[AgreementDocument(name="A")]))
    tasks.run_archive(saved.id, "final")
    tasks.run_archive("missing", "final")

    assert uploaded == [saved.id]
