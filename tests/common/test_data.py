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

from skybox.common.data import EmptyResponse, HTTPHeaderDict, HTTPResponse, RequestMethod, Root

SAMPLE_HEADER_DICT = {
    "Content-Type": "application/json",
    "Authorization": "Bearer 123",
    "Cookie": "session=123",
    "Set-Cookie": "session=123",
}


class TestHTTPHeaderDict(unittest.TestCase):
    def assert_matches_sample_dict(self, headers: HTTPHeaderDict) -> None:
        """Assert that the given headers match the sample dict."""
        self.assertEqual(len(SAMPLE_HEADER_DICT), len(headers))
        for key, value in SAMPLE_HEADER_DICT.items():
            self.assertEqual(value, headers[key])

    def test_init_empty(self) -> None:
        self.assertEqual(0, len(HTTPHeaderDict()))

    def test_init_mapping(self) -> None:
        self.assert_matches_sample_dict(HTTPHeaderDict(SAMPLE_HEADER_DICT))

    def test_init_sequence(self) -> None:
        self.assert_matches_sample_dict(HTTPHeaderDict(list(SAMPLE_HEADER_DICT.items())))

    def test_init_kwargs(self) -> None:
        self.assert_matches_sample_dict(HTTPHeaderDict(**SAMPLE_HEADER_DICT))

    @parameterized.expand(
        [
            ("lower case", "content-type"),
            ("upper case", "CONTENT-TYPE"),
            ("mixed case", "cOnTeNt-TyPe"),
        ]
    )
    def test_case_insensitive(self, _label: str, key: str) -> None:
        """Test that header names are case-insensitive."""
        headers = HTTPHeaderDict(SAMPLE_HEADER_DICT)
        self.assertIn(key, headers)
        self.assertEqual("application/json", headers[key])
        self.assertEqual("application/json", headers.get(key))
        del headers[key]
        self.assertNotIn("Content-Type", headers)

    def test_repeated_headers_are_combined(self) -> None:
        headers = HTTPHeaderDict([("Accept", "text/plain"), ("accept", "application/json")])
        self.assertEqual("text/plain,application/json", headers["Accept"])

    def test_set_cookie_is_replaced(self) -> None:
        headers = HTTPHeaderDict({"Set-Cookie": "a=1"})
        headers["set-cookie"] = "b=2"
        self.assertEqual("b=2", headers["Set-Cookie"])

    def test_repr_hides_sensitive_values(self) -> None:
        text = repr(HTTPHeaderDict(SAMPLE_HEADER_DICT))
        self.assertIn("application/json", text)
        self.assertNotIn("123", text)

    def test_copy_is_independent(self) -> None:
        headers = HTTPHeaderDict(SAMPLE_HEADER_DICT)
        copied = headers.copy()
        copied["X-Other"] = "value"
        self.assertNotIn("X-Other", headers)
        self.assertEqual(headers, HTTPHeaderDict(SAMPLE_HEADER_DICT))


class TestHTTPResponse(unittest.TestCase):
    def test_getheader(self) -> None:
        response = HTTPResponse(status=200, data=b"", headers=HTTPHeaderDict({"X-Skybox-Metadata": "{}"}))
        self.assertEqual("{}", response.getheader("x-skybox-metadata"))
        self.assertEqual("default", response.getheader("Etag", "default"))
        self.assertIsInstance(response, EmptyResponse)

    def test_getheaders_returns_copy(self) -> None:
        response = HTTPResponse(status=200, data=b"", headers=HTTPHeaderDict({"Etag": "abc"}))
        headers = response.getheaders()
        headers["Etag"] = "def"
        self.assertEqual("abc", response.getheader("Etag"))


class TestEnums(unittest.TestCase):
    @parameterized.expand([(Root.FULL, "dropbox"), (Root.APP_FOLDER, "sandbox")])
    def test_root(self, root: Root, expected: str) -> None:
        self.assertEqual(expected, str(root))
        self.assertIs(root, Root(expected))

    def test_request_method(self) -> None:
        self.assertEqual("POST", str(RequestMethod.POST))
