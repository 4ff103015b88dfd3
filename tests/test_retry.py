"""Tests for cfspeed.retry and cfspeed.cancellation."""

import asyncio
import unittest

from cfspeed.cancellation import SpeedTestCancelled, abortable, raise_if_cancelled
from cfspeed.retry import with_retry


class FlakyOperation:
    """Fails ``failures`` times with a distinct error, then returns ``value``."""

    def __init__(self, failures: int, value: str = "ok") -> None:
        self.failures = failures
        self.value = value
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"failure #{self.calls}")
        return self.value


class RecordingSleep:
    def __init__(self) -> None:
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestWithRetry(unittest.IsolatedAsyncioTestCase):
    async def test_first_try_success(self):
        op = FlakyOperation(0)
        sleep = RecordingSleep()
        self.assertEqual(await with_retry(op, retries=2, sleep=sleep), "ok")
        self.assertEqual(op.calls, 1)
        self.assertEqual(sleep.delays, [])

    async def test_recovers_within_budget(self):
        for retries in range(4):
            for k in range(retries + 1):
                with self.subTest(retries=retries, failures=k):
                    op = FlakyOperation(k)
                    result = await with_retry(op, retries=retries, sleep=RecordingSleep())
                    self.assertEqual(result, "ok")
                    self.assertEqual(op.calls, k + 1)

    async def test_exhausted_raises_last_error(self):
        op = FlakyOperation(5)
        with self.assertRaises(ConnectionError) as ctx:
            await with_retry(op, retries=2, sleep=RecordingSleep())
        self.assertEqual(str(ctx.exception), "failure #3")
        self.assertEqual(op.calls, 3)

    async def test_zero_retries_single_attempt(self):
        op = FlakyOperation(1)
        with self.assertRaises(ConnectionError):
            await with_retry(op, retries=0, sleep=RecordingSleep())
        self.assertEqual(op.calls, 1)

    async def test_linear_backoff(self):
        sleep = RecordingSleep()
        await with_retry(FlakyOperation(3), retries=3, sleep=sleep)
        self.assertEqual(len(sleep.delays), 3)
        for got, want in zip(sleep.delays, [0.3, 0.6, 0.9]):
            self.assertAlmostEqual(got, want)

    async def test_no_sleep_after_final_failure(self):
        sleep = RecordingSleep()
        with self.assertRaises(ConnectionError):
            await with_retry(FlakyOperation(9), retries=1, sleep=sleep)
        self.assertEqual(len(sleep.delays), 1)

    async def test_negative_retries_rejected(self):
        with self.assertRaises(ValueError):
            await with_retry(FlakyOperation(0), retries=-1)

    async def test_error_propagates_unchanged(self):
        marker = RuntimeError("boom")

        async def op():
            raise marker

        with self.assertRaises(RuntimeError) as ctx:
            await with_retry(op, retries=0)
        self.assertIs(ctx.exception, marker)

    async def test_final_attempt_error_is_raised(self):
        errors = []

        async def op():
            errors.append(ConnectionError(f"failure #{len(errors) + 1}"))
            raise errors[-1]

        with self.assertRaises(ConnectionError) as ctx:
            await with_retry(op, retries=2, sleep=RecordingSleep())
        self.assertEqual(len(errors), 3)
        self.assertIs(ctx.exception, errors[-1])


class TestWithRetryCancellation(unittest.IsolatedAsyncioTestCase):
    async def test_signal_before_start(self):
        signal = asyncio.Event()
        signal.set()
        op = FlakyOperation(0)
        with self.assertRaises(SpeedTestCancelled):
            await with_retry(op, retries=2, signal=signal)
        self.assertEqual(op.calls, 0)

    async def test_no_retry_after_signal(self):
        signal = asyncio.Event()
        sleep = RecordingSleep()

        async def op():
            signal.set()
            raise ConnectionError("aborted")

        with self.assertRaises(SpeedTestCancelled) as ctx:
            await with_retry(op, retries=5, signal=signal, sleep=sleep)
        self.assertIsInstance(ctx.exception.__cause__, ConnectionError)
        self.assertEqual(sleep.delays, [])

    async def test_cancelled_operation_not_retried(self):
        calls = 0

        async def op():
            nonlocal calls
            calls += 1
            raise SpeedTestCancelled("stop")

        with self.assertRaises(SpeedTestCancelled):
            await with_retry(op, retries=5, sleep=RecordingSleep())
        self.assertEqual(calls, 1)

    async def test_signal_aborts_backoff_sleep(self):
        signal = asyncio.Event()
        op = FlakyOperation(10)
        asyncio.get_running_loop().call_later(0.05, signal.set)

        # Real sleep: the first backoff is 30 s, the signal must cut it short.
        with self.assertRaises(SpeedTestCancelled):
            await asyncio.wait_for(
                with_retry(op, retries=3, signal=signal, backoff=30.0),
                timeout=5,
            )
        self.assertEqual(op.calls, 1)

    async def test_task_cancellation_not_retried(self):
        started = asyncio.Event()
        calls = 0

        async def op():
            nonlocal calls
            calls += 1
            started.set()
            await asyncio.sleep(30)

        task = asyncio.ensure_future(with_retry(op, retries=3))
        await started.wait()
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertEqual(calls, 1)


class TestAbortable(unittest.IsolatedAsyncioTestCase):
    async def test_no_signal_passthrough(self):
        async def work():
            return 42

        self.assertEqual(await abortable(work(), None), 42)

    async def test_completes_before_signal(self):
        signal = asyncio.Event()

        async def work():
            return "done"

        self.assertEqual(await abortable(work(), signal), "done")

    async def test_error_passes_through(self):
        async def work():
            raise ValueError("bad")

        with self.assertRaises(ValueError):
            await abortable(work(), asyncio.Event())

    async def test_signal_cancels_inner_work(self):
        signal = asyncio.Event()
        inner_cancelled = asyncio.Event()

        async def work():
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                inner_cancelled.set()
                raise

        asyncio.get_running_loop().call_later(0.05, signal.set)
        with self.assertRaises(SpeedTestCancelled):
            await asyncio.wait_for(abortable(work(), signal), timeout=5)
        self.assertTrue(inner_cancelled.is_set())

    async def test_already_set_signal(self):
        signal = asyncio.Event()
        signal.set()
        ran = False

        async def work():
            nonlocal ran
            ran = True

        with self.assertRaises(SpeedTestCancelled):
            await abortable(work(), signal)
        self.assertFalse(ran)

    async def test_outer_cancel_waits_for_inner_cleanup(self):
        started = asyncio.Event()
        cleaned_up = False

        async def work():
            nonlocal cleaned_up
            started.set()
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                await asyncio.sleep(0)
                cleaned_up = True
                raise

        outer = asyncio.ensure_future(abortable(work(), asyncio.Event()))
        await started.wait()
        outer.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await outer
        self.assertTrue(cleaned_up)


class TestRaiseIfCancelled(unittest.IsolatedAsyncioTestCase):
    async def test_none_signal(self):
        raise_if_cancelled(None)

    async def test_unset_signal(self):
        raise_if_cancelled(asyncio.Event())

    async def test_set_signal(self):
        signal = asyncio.Event()
        signal.set()
        with self.assertRaises(SpeedTestCancelled):
            raise_if_cancelled(signal)


if __name__ == "__main__":
    unittest.main()
