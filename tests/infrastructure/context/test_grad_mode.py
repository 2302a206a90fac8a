import asyncio
import threading
import unittest

import numpy as np

import gradlite
from gradlite import NO_GRAD, ContextManager, in_context, is_grad_enabled, no_grad


class TestNoGrad(unittest.TestCase):
    def tearDown(self) -> None:
        self.assertFalse(in_context(NO_GRAD))

    def test_block_result_is_returned(self):
        self.assertEqual(no_grad(lambda: 42), 42)

    def test_block_output_is_detached(self):
        a = gradlite.ones((2, 2), requires_grad=True)
        b = gradlite.ones((2, 2), requires_grad=True)

        out = no_grad(lambda: gradlite.add(a, b))

        self.assertFalse(out.requires_grad)
        self.assertTrue(out.is_leaf)
        np.testing.assert_allclose(out.to_numpy(), np.full((2, 2), 2.0))

    def test_tracking_resumes_after_block(self):
        a = gradlite.ones((2,), requires_grad=True)
        no_grad(lambda: a * 2)
        self.assertTrue(is_grad_enabled())
        self.assertTrue((a * 2).requires_grad)

    def test_context_is_exited_when_block_raises(self):
        def boom():
            self.assertFalse(is_grad_enabled())
            raise KeyError("boom")

        with self.assertRaises(KeyError):
            no_grad(boom)
        self.assertTrue(is_grad_enabled())

    def test_with_statement(self):
        a = gradlite.ones((3,), requires_grad=True)
        with no_grad():
            self.assertFalse(is_grad_enabled())
            out = a * a
        self.assertFalse(out.requires_grad)
        self.assertTrue(is_grad_enabled())

    def test_with_statement_exits_on_exception(self):
        with self.assertRaises(RuntimeError):
            with no_grad():
                raise RuntimeError("inside")
        self.assertTrue(is_grad_enabled())

    def test_nested_scope_does_not_reenable_outer(self):
        a = gradlite.ones((2,), requires_grad=True)
        with no_grad():
            with no_grad():
                pass
            self.assertFalse(is_grad_enabled())
            self.assertFalse((a + 1).requires_grad)
        self.assertTrue(is_grad_enabled())

    def test_decorator(self):
        @no_grad()
        def double(x):
            return x * 2

        a = gradlite.ones((2,), requires_grad=True)
        out = double(a)
        self.assertFalse(out.requires_grad)
        self.assertEqual(double.__name__, "double")
        self.assertTrue(is_grad_enabled())

    def test_other_thread_keeps_tracking(self):
        a = gradlite.ones((2,), requires_grad=True)
        entered = threading.Event()
        release = threading.Event()

        def worker():
            with no_grad():
                entered.set()
                release.wait(timeout=5)

        t = threading.Thread(target=worker)
        t.start()
        self.assertTrue(entered.wait(timeout=5))
        try:
            self.assertTrue(is_grad_enabled())
            self.assertTrue((a * 3).requires_grad)
        finally:
            release.set()
            t.join(timeout=5)

    def test_other_asyncio_task_keeps_tracking(self):
        a = gradlite.ones((2,), requires_grad=True)

        async def suppressed():
            with no_grad():
                await asyncio.sleep(0)
                await asyncio.sleep(0)
                return (a * 2).requires_grad

        async def tracked():
            await asyncio.sleep(0)
            return (a * 2).requires_grad

        async def main():
            return await asyncio.gather(suppressed(), tracked())

        inside, outside = asyncio.run(main())
        self.assertFalse(inside)
        self.assertTrue(outside)

    def test_explicit_task(self):
        a = gradlite.ones((2,), requires_grad=True)
        with no_grad(task="worker-1"):
            self.assertFalse(is_grad_enabled("worker-1"))
            self.assertTrue(is_grad_enabled("worker-2"))
            self.assertTrue(is_grad_enabled())
            self.assertTrue((a * 2).requires_grad)
        self.assertTrue(is_grad_enabled("worker-1"))

    def test_private_registry_is_not_accepted(self):
        # operations always consult the process-wide registry
        with self.assertRaises(TypeError):
            no_grad(manager=ContextManager())
        with self.assertRaises(TypeError):
            is_grad_enabled(manager=ContextManager())


if __name__ == "__main__":
    unittest.main()
