from __future__ import annotations

import asyncio
import random
import tempfile
import unittest
import warnings
from pathlib import Path

import numpy as np

import gradlite
from gradlite import (
    FileSystemBackend,
    MalformedUnitWarning,
    MemoryBackend,
    PersistenceConfig,
    PersistencePrivilegeError,
    TensorTypeError,
)
from gradlite.infrastructure.persistence import MemoryUnit

_FAST = PersistenceConfig(chunk_delay=0.0)
_CHUNKED = PersistenceConfig(chunk_threshold=10, chunk_delay=0.0)


class _RecordingMemoryBackend(MemoryBackend):
    """
    MemoryBackend that records which units were written through an editor.
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.edited: list[str] = []

    def open_editor(self, unit):
        self.edited.append(unit.name)
        return super().open_editor(unit)


def _sample_tensors(n: int) -> list:
    gradlite.manual_seed(0)
    return [gradlite.randn((i + 1, 2)) for i in range(n)]


class TestMemoryBackendSaveLoad(unittest.TestCase):
    def test_round_trip_preserves_order_and_contents(self):
        backend = MemoryBackend()
        tensors = _sample_tensors(3)

        group = gradlite.save(tensors, "weights", backend=backend, config=_FAST)
        self.assertEqual(group.name, "weights_folder_rdata")
        self.assertEqual(
            [u.name for u in group.children],
            ["tensor1_rdata", "tensor2_rdata", "tensor3_rdata"],
        )
        self.assertEqual([u.attributes["id"] for u in group.children], [1, 2, 3])

        loaded = gradlite.load(group, backend=backend)
        self.assertEqual(len(loaded), 3)
        for src, dst in zip(tensors, loaded):
            self.assertEqual(dst.shape, src.shape)
            np.testing.assert_array_equal(dst.to_numpy(), src.to_numpy())
            self.assertFalse(dst.requires_grad)
            self.assertTrue(dst.is_leaf)

    def test_single_tensor_and_default_name(self):
        backend = MemoryBackend()
        t = gradlite.tensor([[1.0, 2.0], [3.0, 4.0]])

        group = gradlite.save(t, backend=backend, config=_FAST)

        self.assertEqual(group.name, "stored_folder_rdata")
        self.assertEqual(group.children[0].source, "[\n[1.0,2.0],\n[3.0,4.0]\n]")
        (loaded,) = gradlite.load("stored_folder_rdata", backend=backend)
        self.assertEqual(loaded.tolist(), t.tolist())

    def test_load_sorts_by_id_not_storage_order(self):
        backend = MemoryBackend()
        tensors = [gradlite.full((1,), float(i)) for i in range(12)]
        group = gradlite.save(tensors, backend=backend, config=_FAST)

        random.Random(3).shuffle(group.children)
        loaded = gradlite.load(group, backend=backend)

        self.assertEqual([t.item() for t in loaded], [float(i) for i in range(12)])

    def test_load_requires_grad(self):
        backend = MemoryBackend()
        group = gradlite.save(gradlite.ones((2,)), backend=backend, config=_FAST)
        (loaded,) = gradlite.load(group, requires_grad=True, backend=backend)
        self.assertTrue(loaded.requires_grad)
        self.assertTrue(loaded.is_leaf)

    def test_malformed_members_warn_and_are_skipped(self):
        backend = MemoryBackend()
        group = gradlite.save(
            [gradlite.tensor([1.0]), gradlite.tensor([2.0])], backend=backend, config=_FAST
        )
        group.children.append("not a unit")
        group.children.append(MemoryUnit(name="no_id", source="[3.0]"))
        group.children.append(MemoryUnit(name="bad_payload", attributes={"id": 0}, source="[1,"))

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            loaded = gradlite.load(group, backend=backend)

        malformed = [w for w in caught if issubclass(w.category, MalformedUnitWarning)]
        self.assertEqual(len(malformed), 3)
        self.assertEqual([t.item() for t in loaded], [1.0, 2.0])

    def test_assert_warns_for_single_malformed_member(self):
        backend = MemoryBackend()
        group = gradlite.save(gradlite.tensor([1.0]), backend=backend, config=_FAST)
        group.children.append(42)
        with self.assertWarns(MalformedUnitWarning):
            loaded = gradlite.load(group, backend=backend)
        self.assertEqual(len(loaded), 1)

    def test_chunked_path_round_trips(self):
        backend = _RecordingMemoryBackend()
        small = gradlite.tensor([1.0])
        big = gradlite.tensor([[1.5, 2.5, 3.5], [4.5, 5.5, 6.5]])

        group = gradlite.save([small, big], backend=backend, config=_CHUNKED)

        self.assertEqual(backend.edited, ["tensor2_rdata"])
        loaded = gradlite.load(group, backend=backend)
        np.testing.assert_array_equal(loaded[0].to_numpy(), small.to_numpy())
        np.testing.assert_array_equal(loaded[1].to_numpy(), big.to_numpy())

    def test_default_threshold_routes_large_payloads_through_editor(self):
        backend = _RecordingMemoryBackend()
        gradlite.manual_seed(1)
        big = gradlite.randn((25000,))
        self.assertGreaterEqual(len(gradlite.encode(big)), 199_900)

        group = gradlite.save(big, backend=backend, config=_FAST)

        self.assertEqual(backend.edited, ["tensor1_rdata"])
        (loaded,) = gradlite.load(group, backend=backend)
        np.testing.assert_array_equal(loaded.to_numpy(), big.to_numpy())

    def test_non_tensor_member_raises_before_writing(self):
        backend = MemoryBackend()
        with self.assertRaises(TensorTypeError) as cm:
            gradlite.save([gradlite.ones((1,)), 3.0], backend=backend, config=_FAST)
        self.assertEqual(cm.exception.op, "save")
        self.assertEqual(cm.exception.position, 2)
        self.assertEqual(backend.groups, {})

        with self.assertRaises(TensorTypeError):
            gradlite.save("not tensors", backend=backend, config=_FAST)

    def test_without_write_access_nothing_is_written(self):
        backend = MemoryBackend(writable=False)
        with self.assertRaises(PersistencePrivilegeError):
            gradlite.save(gradlite.ones((2,)), backend=backend, config=_FAST)
        self.assertEqual(backend.groups, {})

    def test_existing_group_requires_overwrite(self):
        backend = MemoryBackend()
        gradlite.save(gradlite.ones((1,)), "w", backend=backend, config=_FAST)
        with self.assertRaises(FileExistsError):
            gradlite.save(gradlite.ones((1,)), "w", backend=backend, config=_FAST)

        group = gradlite.save(
            gradlite.zeros((1,)), "w", backend=backend, config=_FAST, overwrite=True
        )
        (loaded,) = gradlite.load(group, backend=backend)
        self.assertEqual(loaded.item(), 0.0)

    def test_unknown_group_raises(self):
        with self.assertRaises(FileNotFoundError):
            gradlite.load("missing_folder_rdata", backend=MemoryBackend())

    def test_float64_round_trip_keeps_dtype_and_values(self):
        backend = MemoryBackend()
        t = gradlite.tensor(np.array([0.1, 1.0 / 3.0], dtype=np.float64))

        group = gradlite.save([gradlite.ones((1,)), t], backend=backend, config=_FAST)

        self.assertEqual(
            [u.attributes["dtype"] for u in group.children], ["float32", "float64"]
        )
        single, double = gradlite.load(group, backend=backend)
        self.assertEqual(single.dtype, np.float32)
        self.assertEqual(double.dtype, np.float64)
        np.testing.assert_array_equal(double.to_numpy(), t.to_numpy())

    def test_out_of_range_payload_warns_and_is_skipped(self):
        backend = MemoryBackend()
        group = gradlite.save(gradlite.tensor([1.0]), backend=backend, config=_FAST)
        group.children.append(
            MemoryUnit(name="huge", attributes={"id": 2}, source="[" + "9" * 400 + "]")
        )

        with self.assertWarns(MalformedUnitWarning) as cm:
            loaded = gradlite.load(group, backend=backend)

        self.assertIn("huge", str(cm.warning))
        self.assertEqual([t.item() for t in loaded], [1.0])

    def test_unsupported_dtype_warns_and_is_skipped(self):
        backend = MemoryBackend()
        group = gradlite.save(gradlite.tensor([1.0]), backend=backend, config=_FAST)
        group.children.append(
            MemoryUnit(name="bogus", attributes={"id": 2, "dtype": "bogus"}, source="[2.0]")
        )
        group.children.append(
            MemoryUnit(name="ints", attributes={"id": 3, "dtype": "int64"}, source="[3.0]")
        )

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            loaded = gradlite.load(group, backend=backend)

        malformed = [w for w in caught if issubclass(w.category, MalformedUnitWarning)]
        self.assertEqual(len(malformed), 2)
        self.assertEqual([t.item() for t in loaded], [1.0])


class TestFileSystemBackendSaveLoad(unittest.TestCase):
    def test_layout_on_disk(self):
        with tempfile.TemporaryDirectory() as td:
            backend = FileSystemBackend(td)
            group = gradlite.save(
                [gradlite.tensor([1.0, 2.0]), gradlite.tensor([[3.0]])],
                "model",
                backend=backend,
                config=_FAST,
            )

            self.assertEqual(group, Path(td) / "model_folder_rdata")
            names = sorted(p.name for p in group.iterdir())
            self.assertEqual(names, ["tensor1_rdata.rdata", "tensor2_rdata.rdata"])
            text = (group / "tensor1_rdata.rdata").read_text(encoding="utf-8")
            self.assertEqual(text, "# id: 1\n# dtype: float32\n[1.0,2.0]")

    def test_round_trip_by_name_and_by_path(self):
        tensors = [gradlite.full((2, 2), float(i)) for i in range(11)]
        with tempfile.TemporaryDirectory() as td:
            backend = FileSystemBackend(td)
            group = gradlite.save(tensors, backend=backend, config=_FAST)

            by_path = gradlite.load(group, backend=backend)
            by_name = gradlite.load("stored_folder_rdata", backend=backend)

        for loaded in (by_path, by_name):
            self.assertEqual(len(loaded), 11)
            for i, t in enumerate(loaded):
                np.testing.assert_array_equal(t.to_numpy(), np.full((2, 2), float(i)))

    def test_non_finite_values_round_trip(self):
        t = gradlite.tensor([np.inf, -np.inf, np.nan, 1.25])
        with tempfile.TemporaryDirectory() as td:
            backend = FileSystemBackend(td)
            group = gradlite.save(t, backend=backend, config=_FAST)
            (loaded,) = gradlite.load(group, backend=backend)
        np.testing.assert_array_equal(loaded.to_numpy(), t.to_numpy())

    def test_chunked_write_through_file_editor(self):
        gradlite.manual_seed(2)
        t = gradlite.randn((3, 4))
        with tempfile.TemporaryDirectory() as td:
            backend = FileSystemBackend(td)
            group = gradlite.save(t, backend=backend, config=_CHUNKED)
            text = (group / "tensor1_rdata.rdata").read_text(encoding="utf-8")
            (loaded,) = gradlite.load(group, backend=backend)

        self.assertTrue(text.startswith("# id: 1\n# dtype: float32\n[\n"))
        np.testing.assert_array_equal(loaded.to_numpy(), t.to_numpy())

    def test_foreign_files_warn_and_are_skipped(self):
        with tempfile.TemporaryDirectory() as td:
            backend = FileSystemBackend(td)
            group = gradlite.save(
                [gradlite.tensor([1.0]), gradlite.tensor([2.0])], backend=backend, config=_FAST
            )
            (group / "notes.txt").write_text("hello", encoding="utf-8")
            (group / "broken.rdata").write_text("no header\n[1.0]", encoding="utf-8")
            (group / "subdir").mkdir()

            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always")
                loaded = gradlite.load(group, backend=backend)

        malformed = [w for w in caught if issubclass(w.category, MalformedUnitWarning)]
        self.assertEqual(len(malformed), 3)
        self.assertEqual([t.item() for t in loaded], [1.0, 2.0])

    def test_float64_round_trip_on_disk(self):
        t = gradlite.tensor(np.array([[0.1, 1.0 / 3.0], [2.0 / 3.0, 1e-300]]))
        with tempfile.TemporaryDirectory() as td:
            backend = FileSystemBackend(td)
            plain = gradlite.save(t, "plain", backend=backend, config=_FAST)
            chunked = gradlite.save(t, "chunked", backend=backend, config=_CHUNKED)
            text = (plain / "tensor1_rdata.rdata").read_text(encoding="utf-8")
            loaded = gradlite.load(plain, backend=backend) + gradlite.load(
                chunked, backend=backend
            )

        self.assertTrue(text.startswith("# id: 1\n# dtype: float64\n"))
        for back in loaded:
            self.assertEqual(back.dtype, np.float64)
            np.testing.assert_array_equal(back.to_numpy(), t.to_numpy())

    def test_unit_without_dtype_header_loads_as_float32(self):
        with tempfile.TemporaryDirectory() as td:
            backend = FileSystemBackend(td)
            group = backend.create_group("old_folder_rdata")
            (group / "tensor1_rdata.rdata").write_text("# id: 1\n[0.5,1.5]", encoding="utf-8")
            (loaded,) = gradlite.load(group, backend=backend)

        self.assertEqual(loaded.dtype, np.float32)
        self.assertEqual(loaded.tolist(), [0.5, 1.5])

    def test_invalid_utf8_unit_warns_and_is_skipped(self):
        with tempfile.TemporaryDirectory() as td:
            backend = FileSystemBackend(td)
            group = gradlite.save(gradlite.tensor([1.0]), backend=backend, config=_FAST)
            (group / "garbled.rdata").write_bytes(b"# id: 2\n[\xff\xfe]")

            with self.assertWarns(MalformedUnitWarning) as cm:
                loaded = gradlite.load(group, backend=backend)

        self.assertIn("garbled.rdata", str(cm.warning))
        self.assertEqual([t.item() for t in loaded], [1.0])

    def test_read_only_backend_writes_nothing(self):
        with tempfile.TemporaryDirectory() as td:
            backend = FileSystemBackend(td, writable=False)
            self.assertFalse(backend.can_write())
            with self.assertRaises(PersistencePrivilegeError):
                gradlite.save(gradlite.ones((2,)), backend=backend, config=_FAST)
            self.assertEqual(list(Path(td).iterdir()), [])

    def test_missing_root_is_created_on_save(self):
        with tempfile.TemporaryDirectory() as td:
            backend = FileSystemBackend(Path(td) / "nested" / "store")
            self.assertTrue(backend.can_write())
            group = gradlite.save(gradlite.ones((1,)), backend=backend, config=_FAST)
            self.assertTrue(group.is_dir())


class TestAsyncSave(unittest.TestCase):
    def test_asave_round_trip(self):
        backend = _RecordingMemoryBackend()
        tensors = _sample_tensors(2)

        config = PersistenceConfig(chunk_threshold=1, chunk_delay=0.0)
        group = asyncio.run(gradlite.asave(tensors, "a", backend=backend, config=config))

        self.assertEqual(backend.edited, ["tensor1_rdata", "tensor2_rdata"])
        loaded = gradlite.load(group, backend=backend)
        for src, dst in zip(tensors, loaded):
            np.testing.assert_array_equal(dst.to_numpy(), src.to_numpy())

    def test_chunk_delay_yields_to_other_tasks(self):
        backend = MemoryBackend()
        config = PersistenceConfig(chunk_threshold=1, chunk_delay=0.05)
        log: list[str] = []

        async def saver():
            await gradlite.asave(gradlite.ones((2,)), backend=backend, config=config)
            log.append("saved")

        async def ticker():
            await asyncio.sleep(0)
            log.append("tick")

        async def main():
            await asyncio.gather(saver(), ticker())

        asyncio.run(main())
        self.assertEqual(log, ["tick", "saved"])

    def test_asave_checks_privilege(self):
        backend = MemoryBackend(writable=False)
        with self.assertRaises(PersistencePrivilegeError):
            asyncio.run(gradlite.asave(gradlite.ones((1,)), backend=backend, config=_FAST))
        self.assertEqual(backend.groups, {})


class TestDefaultBackend(unittest.TestCase):
    def tearDown(self) -> None:
        gradlite.set_default_backend(None)

    def test_default_backend_is_used(self):
        backend = MemoryBackend()
        gradlite.set_default_backend(backend)
        self.assertIs(gradlite.get_default_backend(), backend)

        gradlite.save(gradlite.ones((1,)), "dflt", config=_FAST)
        self.assertIn("dflt_folder_rdata", backend.groups)
        (loaded,) = gradlite.load("dflt_folder_rdata")
        self.assertEqual(loaded.item(), 1.0)

    def test_reset_restores_filesystem_default(self):
        gradlite.set_default_backend(MemoryBackend())
        gradlite.set_default_backend(None)
        self.assertIsInstance(gradlite.get_default_backend(), FileSystemBackend)


if __name__ == "__main__":
    unittest.main()
