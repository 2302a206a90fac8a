import asyncio
import threading
import unittest

from gradlite import ContextManager, current_task, enter_context, exit_context, in_context


class TestContextManager(unittest.TestCase):
    def setUp(self) -> None:
        self.manager = ContextManager()

    def test_unknown_name_is_not_entered(self):
        self.assertFalse(self.manager.in_context("never_seen"))

    def test_enter_then_exit(self):
        self.manager.enter("no_grad")
        self.assertTrue(self.manager.in_context("no_grad"))
        self.manager.exit("no_grad")
        self.assertFalse(self.manager.in_context("no_grad"))

    def test_enter_is_idempotent(self):
        self.manager.enter("ctx")
        self.manager.enter("ctx")
        self.manager.exit("ctx")
        self.assertFalse(self.manager.in_context("ctx"))

    def test_entry_is_removed_when_last_task_exits(self):
        self.manager.enter("ctx", task="a")
        self.manager.enter("ctx", task="b")
        self.assertEqual(self.manager.active_contexts(), frozenset({"ctx"}))

        self.manager.exit("ctx", task="a")
        self.assertEqual(self.manager.active_contexts(), frozenset({"ctx"}))
        self.manager.exit("ctx", task="b")
        self.assertEqual(self.manager.active_contexts(), frozenset())

    def test_exit_without_entry_is_noop(self):
        self.manager.exit("ctx")
        self.manager.enter("ctx", task="a")
        self.manager.exit("ctx", task="b")
        self.assertTrue(self.manager.in_context("ctx", task="a"))
        self.assertFalse(self.manager.in_context("ctx", task="b"))

    def test_explicit_task_handles_are_independent(self):
        self.manager.enter("ctx", task="a")
        self.assertTrue(self.manager.in_context("ctx", task="a"))
        self.assertFalse(self.manager.in_context("ctx", task="b"))
        self.assertFalse(self.manager.in_context("ctx"))

    def test_threads_do_not_observe_each_other(self):
        entered = threading.Event()
        release = threading.Event()
        seen: dict[str, bool] = {}

        def worker():
            self.manager.enter("ctx")
            seen["worker_inside"] = self.manager.in_context("ctx")
            entered.set()
            release.wait(timeout=5)
            self.manager.exit("ctx")

        t = threading.Thread(target=worker)
        t.start()
        self.assertTrue(entered.wait(timeout=5))
        seen["main_inside"] = self.manager.in_context("ctx")
        release.set()
        t.join(timeout=5)

        self.assertTrue(seen["worker_inside"])
        self.assertFalse(seen["main_inside"])
        self.assertEqual(self.manager.active_contexts(), frozenset())

    def test_asyncio_tasks_do_not_observe_each_other(self):
        manager = self.manager

        async def inside() -> bool:
            manager.enter("ctx")
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            result = manager.in_context("ctx")
            manager.exit("ctx")
            return result

        async def outside() -> bool:
            await asyncio.sleep(0)
            return manager.in_context("ctx")

        async def main():
            return await asyncio.gather(inside(), outside())

        inside_result, outside_result = asyncio.run(main())
        self.assertTrue(inside_result)
        self.assertFalse(outside_result)
        self.assertEqual(manager.active_contexts(), frozenset())

    def test_current_task_is_thread_outside_event_loop(self):
        self.assertIs(current_task(), threading.current_thread())

    def test_current_task_is_asyncio_task_inside_event_loop(self):
        async def main():
            return current_task(), asyncio.current_task()

        handle, task = asyncio.run(main())
        self.assertIs(handle, task)


class TestDefaultRegistry(unittest.TestCase):
    def test_module_level_functions_share_one_registry(self):
        enter_context("test_default_registry")
        try:
            self.assertTrue(in_context("test_default_registry"))
        finally:
            exit_context("test_default_registry")
        self.assertFalse(in_context("test_default_registry"))


if __name__ == "__main__":
    unittest.main()
