"""Tests for the bcrypt password hasher."""

from __future__ import annotations

import unittest

from accounts.hashing import HashingError, PasswordHasher


class PasswordHashingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.hasher = PasswordHasher(rounds=4)

    def test_hash_and_verify(self) -> None:
        hashed = self.hasher.hash("supersecurepassword")

        self.assertNotEqual(hashed, "supersecurepassword")
        self.assertTrue(hashed.startswith("$2"))
        self.assertTrue(self.hasher.verify("supersecurepassword", hashed))
        self.assertFalse(self.hasher.verify("incorrect", hashed))

    def test_hashes_are_salted(self) -> None:
        first = self.hasher.hash("same-password")
        second = self.hasher.hash("same-password")

        self.assertNotEqual(first, second)
        self.assertTrue(self.hasher.verify("same-password", first))
        self.assertTrue(self.hasher.verify("same-password", second))

    def test_work_factor_is_encoded_in_hash(self) -> None:
        hashed = PasswordHasher(rounds=5).hash("pw")
        self.assertIn("$05$", hashed)

    def test_malformed_hash_raises(self) -> None:
        with self.assertRaises(HashingError):
            self.hasher.verify("password", "not-a-bcrypt-hash")

    def test_non_string_password_raises(self) -> None:
        with self.assertRaises(HashingError):
            self.hasher.hash(None)  # type: ignore[arg-type]

    def test_rounds_out_of_range(self) -> None:
        with self.assertRaises(ValueError):
            PasswordHasher(rounds=3)
        with self.assertRaises(ValueError):
            PasswordHasher(rounds=32)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
