"""Test the verification worker loop."""

import signal

from domain_verifier.run_verification_worker import VerificationWorker
from domain_verifier.verification.authority_client import AuthorityStatus


class TestVerificationWorker:

    def test_run_once_sweeps(self, scheduler, domain, authority, clock):
        scheduler.start_attempt(domain.domain_id)
        authority.default = AuthorityStatus(verified=True)
        clock.advance(30)

        result = VerificationWorker(scheduler, poll_interval=0).run_once()

        assert result.processed == 1
        assert result.verified == 1

    def test_signal_stops_loop(self, scheduler):
        worker = VerificationWorker(scheduler, poll_interval=0)

        worker._signal_handler(signal.SIGTERM, None)

        assert worker._stop_requested is True

    def test_loop_survives_sweep_errors(self, scheduler, monkeypatch):
        """A failing cycle is logged and the loop keeps going until stopped."""
        worker = VerificationWorker(scheduler, poll_interval=0)
        cycles = []

        def flaky_sweep():
            cycles.append(1)
            if len(cycles) == 1:
                raise RuntimeError("database went away")
            worker.stop()

        monkeypatch.setattr(worker, "run_once", flaky_sweep)
        monkeypatch.setattr(signal, "signal", lambda *args: None)

        worker.start()

        assert len(cycles) == 2
