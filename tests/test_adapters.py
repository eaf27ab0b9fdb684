import asyncio
import contextlib
import gc
import io
import unittest

from deferpy.adapters import aenter_context, enter_context, enter_do
from deferpy.context import ResourceContext
from deferpy.current import global_cleanup
from deferpy.detach import detach
from deferpy.errors import AdapterTaskFailure, CompositeCleanupError
from deferpy.logger import ConsoleLogger, set_logger
from deferpy.scope import context


class TestEnterDo(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.buf = io.StringIO()
        self._prev = set_logger(ConsoleLogger(stream=self.buf))

    async def asyncTearDown(self):
        set_logger(self._prev)

    async def test_returns_value_and_tears_down_at_cleanup(self):
        teardowns = []

        async def acquire(f):
            r = 40
            await f(r)
            teardowns.append(r)

        async with context():
            v = await enter_do(acquire)
            self.assertEqual(v, 40)
            await asyncio.sleep(0)
            self.assertEqual(teardowns, [])
        self.assertEqual(teardowns, [40])

    async def test_passes_arguments_and_returns_tuples(self):
        async def acquire(f, a, b, *, scale=1):
            await f(a * scale, b * scale)

        ctx = ResourceContext()
        self.assertEqual(await enter_do(ctx, acquire, 1, 2, scale=10), (10, 20))
        await ctx.cleanup()

    async def test_no_values_returns_none(self):
        async def acquire(f):
            await f()

        async with context():
            self.assertIsNone(await enter_do(acquire))

    async def test_setup_failure(self):
        async def acquire(f):
            raise ValueError("boom")

        ctx = ResourceContext()
        with self.assertRaises(AdapterTaskFailure) as cm:
            await enter_do(ctx, acquire)
        err = cm.exception
        self.assertIsInstance(err.__cause__, ValueError)
        self.assertEqual(str(err.__cause__), "boom")
        self.assertEqual(err.phase, "setup")
        self.assertEqual(err.fiber.status, "failed")
        self.assertEqual(len(ctx), 0)

    async def test_acquire_returning_without_callback(self):
        async def acquire(f):
            return "nothing"

        with self.assertRaises(AdapterTaskFailure) as cm:
            await enter_do(ResourceContext(), acquire)
        self.assertIsInstance(cm.exception.__cause__, RuntimeError)

    async def test_teardown_failure_surfaces_at_cleanup(self):
        async def acquire(f):
            await f(1)
            raise ValueError("boom2")

        ctx = ResourceContext()
        v = await enter_do(ctx, acquire)
        self.assertEqual(v, 1)
        with self.assertRaises(CompositeCleanupError) as cm:
            await ctx.cleanup()
        failure = cm.exception.errors[0].error
        self.assertIsInstance(failure, AdapterTaskFailure)
        self.assertEqual(failure.phase, "teardown")
        self.assertEqual(str(failure.__cause__), "boom2")

    async def test_callback_invoked_twice_fails_inside_acquire(self):
        async def acquire(f):
            await f(1)
            await f(2)

        ctx = ResourceContext()
        self.assertEqual(await enter_do(ctx, acquire), 1)
        with self.assertRaises(CompositeCleanupError) as cm:
            await ctx.cleanup()
        self.assertIsInstance(cm.exception.errors[0].error.__cause__, RuntimeError)

    async def test_cleanup_from_another_task(self):
        events = []

        async def acquire(f):
            events.append("setup")
            await f("res")
            events.append("teardown")

        ctx = ResourceContext()
        self.assertEqual(await enter_do(ctx, acquire), "res")
        await asyncio.create_task(ctx.cleanup())
        self.assertEqual(events, ["setup", "teardown"])

    async def test_detached_adapter_torn_down_after_collection(self):
        events = []

        class Handle:
            pass

        async def acquire(f):
            await f("res")
            events.append("teardown")

        async with context():
            await enter_do(acquire)
            handle = detach(Handle())
        self.assertEqual(events, [])
        del handle
        gc.collect()
        for _ in range(100):
            if events: break
            await asyncio.sleep(0.01)
        self.assertEqual(events, ["teardown"])

    async def test_cancelled_parent_interrupts_child(self):
        started = asyncio.Event()
        cancelled = []

        async def acquire(f):
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise
            await f(1)

        task = asyncio.create_task(enter_do(ResourceContext(), acquire))
        await started.wait()
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        for _ in range(10):
            if cancelled: break
            await asyncio.sleep(0)
        self.assertEqual(cancelled, [True])

    async def _settle(self, until):
        for _ in range(20):
            if until(): return
            await asyncio.sleep(0)

    async def test_sync_scope_lets_child_tear_down(self):
        events = []

        async def acquire(f):
            await f("res")
            events.append("teardown")

        with context():
            self.assertEqual(await enter_do(acquire), "res")
        await self._settle(lambda: events)
        self.assertEqual(events, ["teardown"])

    async def test_sync_cleanup_logs_teardown_failure(self):
        async def acquire(f):
            await f(1)
            raise ValueError("boom3")

        ctx = ResourceContext()
        await enter_do(ctx, acquire)
        ctx.cleanup_sync()
        await self._settle(lambda: "boom3" in self.buf.getvalue())
        out = self.buf.getvalue()
        self.assertIn("enter_do teardown failed", out)
        self.assertIn("boom3", out)

    async def test_global_cleanup_drains_fallback_adapter(self):
        events = []

        async def acquire(f):
            await f("res")
            events.append("teardown")

        self.assertEqual(await enter_do(acquire), "res")
        global_cleanup()
        await self._settle(lambda: events)
        self.assertEqual(events, ["teardown"])


class TestEnterContext(unittest.TestCase):
    def test_enters_and_exits_on_cleanup(self):
        events = []

        @contextlib.contextmanager
        def managed(name):
            events.append(f"enter {name}")
            yield name.upper()
            events.append(f"exit {name}")

        with context():
            self.assertEqual(enter_context(managed("a")), "A")
            enter_context(managed("b"))
            self.assertEqual(events, ["enter a", "enter b"])
        self.assertEqual(events, ["enter a", "enter b", "exit b", "exit a"])


class TestAsyncEnterContext(unittest.IsolatedAsyncioTestCase):
    async def test_async_context_manager(self):
        events = []

        @contextlib.asynccontextmanager
        async def managed():
            events.append("enter")
            yield 7
            events.append("exit")

        async with context():
            self.assertEqual(await aenter_context(managed()), 7)
        self.assertEqual(events, ["enter", "exit"])
