"""
Retry helper behaviour for storage conflicts.
"""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from bilkro.errors import OverPaymentError
from bilkro.services.concurrency import run_with_retry


class TestRunWithRetry:

    def test_retries_version_conflicts(self):
        calls = []

        def _op():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("version mismatch")
            return "done"

        assert run_with_retry(_op, backoff_base=0) == "done"
        assert len(calls) == 3

    def test_gives_up_after_last_attempt(self):
        calls = []

        def _op():
            calls.append(1)
            raise StaleDataError("version mismatch")

        with pytest.raises(StaleDataError):
            run_with_retry(_op, attempts=2, backoff_base=0)
        assert len(calls) == 2

    def test_service_errors_are_not_retried(self):
        calls = []

        def _op():
            calls.append(1)
            raise OverPaymentError("too much")

        with pytest.raises(OverPaymentError):
            run_with_retry(_op, backoff_base=0)
        assert len(calls) == 1
