#  Copyright © 2025 Bentley Systems, Incorporated
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#      http://www.apache.org/licenses/LICENSE-2.0
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.


import unittest

from parameterized import parameterized

from skybox.common.exceptions import ClientTypeError, InvalidArgument
from skybox.files import normalize_path
from skybox.files.paths import validate_limit, validate_non_empty


class TestNormalizePath(unittest.TestCase):
    @parameterized.expand(
        [
            ("root", "/", "/"),
            ("repeated root", "//", "/"),
            ("absolute", "/Photos/beach.jpg", "/Photos/beach.jpg"),
            ("relative", "Photos/beach.jpg", "/Photos/beach.jpg"),
            ("trailing slash", "/Photos/", "/Photos"),
            ("repeated slashes", "/Photos//2024///beach.jpg", "/Photos/2024/beach.jpg"),
            ("spaces", "/My Photos/a b.jpg", "/My Photos/a b.jpg"),
            ("unicode", "/Fotos/Año nuevo.jpg", "/Fotos/Año nuevo.jpg"),
            ("dots in names", "/a.b/.hidden/..c", "/a.b/.hidden/..c"),
        ]
    )
    def test_normalize_path(self, _label: str, path: str, expected: str) -> None:
        self.assertEqual(expected, normalize_path(path))

    @parameterized.expand(
        [
            ("empty", ""),
            ("control character", "/a\nb"),
            ("null", "/a\x00b"),
            ("backslash", "\\Photos\\beach.jpg"),
            ("current folder", "/Photos/./beach.jpg"),
            ("parent folder", "/Photos/../beach.jpg"),
            ("trailing whitespace", "/Photos /beach.jpg"),
            ("long component", "/" + "a" * 256),
        ]
    )
    def test_invalid_path(self, _label: str, path: str) -> None:
        with self.assertRaises(InvalidArgument):
            normalize_path(path)

    def test_long_component(self) -> None:
        path = "/" + "a" * 255
        self.assertEqual(path, normalize_path(path))

    @parameterized.expand([("/",), ("",), ("///",)])
    def test_root_not_allowed(self, path: str) -> None:
        with self.assertRaises(InvalidArgument):
            normalize_path(path, allow_root=False)

    def test_error_names_argument(self) -> None:
        with self.assertRaises(InvalidArgument) as cm:
            normalize_path("/a/../b", "to_path")
        self.assertIn("to_path", str(cm.exception))

    def test_not_a_string(self) -> None:
        with self.assertRaises(ClientTypeError) as cm:
            normalize_path(42)  # type: ignore[arg-type]
        self.assertEqual((str,), cm.exception.valid_classes)
        self.assertIsInstance(cm.exception, TypeError)


class TestValidateArguments(unittest.TestCase):
    def test_validate_non_empty(self) -> None:
        self.assertEqual("abc", validate_non_empty("  abc ", "rev"))
        with self.assertRaises(InvalidArgument):
            validate_non_empty("   ", "rev")
        with self.assertRaises(ClientTypeError):
            validate_non_empty(None, "rev")  # type: ignore[arg-type]

    @parameterized.expand([(None,), (1,), (500,), (1000,)])
    def test_validate_limit(self, value: int | None) -> None:
        self.assertEqual(value, validate_limit(value, "file_limit", 1000))

    @parameterized.expand([(0,), (-1,), (1001,)])
    def test_limit_out_of_range(self, value: int) -> None:
        with self.assertRaises(InvalidArgument):
            validate_limit(value, "file_limit", 1000)

    @parameterized.expand([(True,), (1.5,), ("10",)])
    def test_limit_not_an_integer(self, value: object) -> None:
        with self.assertRaises(ClientTypeError):
            validate_limit(value, "file_limit", 1000)  # type: ignore[arg-type]
