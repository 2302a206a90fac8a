import json
import unittest

import numpy as np

import gradlite
from gradlite import MalformedUnitError, decode, encode


class TestEncode(unittest.TestCase):
    def test_one_dimensional(self):
        self.assertEqual(encode(gradlite.tensor([1.0, 2.5, 3.0])), "[1.0,2.5,3.0]")

    def test_two_dimensional_layout(self):
        t = gradlite.tensor([[1, 2], [3, 4]])
        self.assertEqual(encode(t), "[\n[1.0,2.0],\n[3.0,4.0]\n]")

    def test_three_dimensional_layout(self):
        arr = np.arange(8, dtype=np.float32).reshape(2, 2, 2)
        expected = (
            "[\n"
            "[\n[0.0,1.0],\n[2.0,3.0]\n],\n"
            "[\n[4.0,5.0],\n[6.0,7.0]\n]\n"
            "]"
        )
        self.assertEqual(encode(gradlite.tensor(arr)), expected)

    def test_single_element(self):
        self.assertEqual(encode(gradlite.tensor(7.0)), "[7.0]")

    def test_shortest_float32_form(self):
        self.assertEqual(encode(gradlite.tensor([0.1])), "[0.1]")

    def test_non_finite_values(self):
        t = gradlite.tensor([np.inf, -np.inf, np.nan])
        self.assertEqual(encode(t), "[Infinity,-Infinity,NaN]")

    def test_output_is_valid_json(self):
        arr = np.linspace(-3, 3, 12, dtype=np.float32).reshape(3, 4)
        self.assertEqual(np.asarray(json.loads(encode(arr))).shape, (3, 4))


class TestDecode(unittest.TestCase):
    def test_round_trip_preserves_float32_values(self):
        gradlite.manual_seed(7)
        t = gradlite.randn((4, 5))
        back = gradlite.tensor(decode(encode(t)), dtype=np.float32)
        np.testing.assert_array_equal(back.to_numpy(), t.to_numpy())

    def test_non_finite_values(self):
        values = decode("[Infinity,-Infinity,NaN]")
        self.assertEqual(values[0], float("inf"))
        self.assertEqual(values[1], float("-inf"))
        self.assertTrue(np.isnan(values[2]))

    def test_rejects_malformed_payloads(self):
        cases = {
            "truncated": "[1.0,",
            "not a list": "5",
            "empty": "[]",
            "ragged": "[[1,2],[3]]",
            "string leaf": '["a"]',
            "bool leaf": "[true]",
            "empty source": "",
        }
        for label, payload in cases.items():
            with self.subTest(case=label):
                with self.assertRaises(MalformedUnitError):
                    decode(payload, "tensor1_rdata")

    def test_returns_float64_array(self):
        values = decode("[\n[1,2.5],\n[3,4]\n]")
        self.assertIsInstance(values, np.ndarray)
        self.assertEqual(values.dtype, np.float64)
        self.assertEqual(values.shape, (2, 2))

    def test_out_of_range_integer_is_malformed(self):
        with self.assertRaises(MalformedUnitError) as cm:
            decode("[" + "9" * 400 + "]", "tensor2_rdata")
        self.assertEqual(cm.exception.member, "tensor2_rdata")

    def test_deep_nesting_is_malformed(self):
        with self.assertRaises(MalformedUnitError):
            decode("[" * 100_000 + "]" * 100_000)

    def test_error_names_member(self):
        with self.assertRaises(MalformedUnitError) as cm:
            decode("nope", "tensor3_rdata")
        self.assertEqual(cm.exception.member, "tensor3_rdata")


if __name__ == "__main__":
    unittest.main()
