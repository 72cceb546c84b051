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
from pydantic import ValidationError

from skybox.common.test_tools import USER_ID, utc_datetime
from skybox.files import AccountInfo, Link, Metadata, Quota, ThumbnailFormat, ThumbnailSize

from ._helpers import ACCOUNT_INFO, FILE_METADATA, FOLDER_METADATA, LINK


class TestMetadata(unittest.TestCase):
    def test_file_metadata(self) -> None:
        metadata = Metadata.model_validate(FILE_METADATA)
        self.assertEqual("/Getting_Started.pdf", metadata.path)
        self.assertFalse(metadata.is_dir)
        self.assertEqual(230783, metadata.bytes)
        self.assertEqual("35e97029684fe", metadata.rev)
        self.assertEqual(utc_datetime(2011, 7, 19, 21, 55, 38), metadata.modified)
        self.assertEqual(utc_datetime(2011, 7, 18, 18, 4, 35), metadata.client_mtime)
        self.assertEqual("application/pdf", metadata.mime_type)
        self.assertIsNone(metadata.contents)
        self.assertFalse(metadata.is_deleted)

    def test_folder_metadata(self) -> None:
        metadata = Metadata.model_validate(FOLDER_METADATA)
        self.assertTrue(metadata.is_dir)
        self.assertIsNone(metadata.rev)
        self.assertIsNone(metadata.modified)
        self.assertEqual(FOLDER_METADATA["hash"], metadata.hash)
        self.assertEqual(1, len(metadata.contents))

        (child,) = metadata.contents
        self.assertIsInstance(child, Metadata)
        self.assertEqual("flower.jpg", child.filename)
        self.assertEqual("/Photos", child.parent_path)
        self.assertTrue(child.thumb_exists)

    @parameterized.expand([("rev",), ("modified",)])
    def test_file_metadata_requires_revision_fields(self, missing: str) -> None:
        content = {key: value for key, value in FILE_METADATA.items() if key != missing}
        with self.assertRaises(ValidationError) as cm:
            Metadata.model_validate(content)
        self.assertIn(missing, str(cm.exception))

    @parameterized.expand([("path",), ("is_dir",), ("bytes",)])
    def test_metadata_requires_field(self, missing: str) -> None:
        content = {key: value for key, value in FOLDER_METADATA.items() if key != missing}
        with self.assertRaises(ValidationError):
            Metadata.model_validate(content)

    def test_invalid_child(self) -> None:
        content = {**FOLDER_METADATA, "contents": [{"path": "/Photos/flower.jpg", "is_dir": False, "bytes": 1}]}
        with self.assertRaises(ValidationError):
            Metadata.model_validate(content)

    @parameterized.expand(
        [
            ("rfc 2822", "Tue, 19 Jul 2011 21:55:38 +0000", utc_datetime(2011, 7, 19, 21, 55, 38)),
            ("other timezone", "Tue, 19 Jul 2011 23:55:38 +0200", utc_datetime(2011, 7, 19, 21, 55, 38)),
            ("no timezone", "Tue, 19 Jul 2011 21:55:38", utc_datetime(2011, 7, 19, 21, 55, 38)),
            ("iso 8601", "2011-07-19T21:55:38Z", utc_datetime(2011, 7, 19, 21, 55, 38)),
        ]
    )
    def test_timestamps(self, _label: str, value: str, expected) -> None:
        metadata = Metadata.model_validate({**FILE_METADATA, "modified": value})
        self.assertEqual(expected, metadata.modified)

    def test_invalid_timestamp(self) -> None:
        with self.assertRaises(ValidationError):
            Metadata.model_validate({**FILE_METADATA, "modified": "not a date"})

    @parameterized.expand(
        [
            ("/", "", "/"),
            ("/a.txt", "a.txt", "/"),
            ("/Photos/2024/beach.jpg", "beach.jpg", "/Photos/2024"),
        ]
    )
    def test_path_components(self, path: str, filename: str, parent_path: str) -> None:
        metadata = Metadata(path=path, is_dir=True, bytes=0)
        self.assertEqual(filename, metadata.filename)
        self.assertEqual(parent_path, metadata.parent_path)


class TestQuota(unittest.TestCase):
    def test_quota(self) -> None:
        quota = Quota(normal=600, shared=400, quota=1500)
        self.assertEqual(1000, quota.used)
        self.assertEqual(1500, quota.total)
        self.assertEqual(500, quota.remaining)

    def test_over_quota(self) -> None:
        quota = Quota(normal=1200, shared=400, quota=1500)
        self.assertEqual(1600, quota.used)
        self.assertEqual(0, quota.remaining)


class TestAccountInfo(unittest.TestCase):
    def test_account_info(self) -> None:
        info = AccountInfo.model_validate(ACCOUNT_INFO)
        self.assertEqual(USER_ID, info.uid)
        self.assertEqual("John P. User", info.display_name)
        self.assertEqual("US", info.country)
        self.assertIs(info.quota_info, info.quota)
        self.assertEqual(680031877871 + 253738410565, info.quota.used)

    def test_uid_as_string(self) -> None:
        info = AccountInfo.model_validate({**ACCOUNT_INFO, "uid": USER_ID})
        self.assertEqual(USER_ID, info.uid)

    def test_missing_quota(self) -> None:
        content = {key: value for key, value in ACCOUNT_INFO.items() if key != "quota_info"}
        with self.assertRaises(ValidationError):
            AccountInfo.model_validate(content)


class TestLink(unittest.TestCase):
    def test_link(self) -> None:
        link = Link.model_validate(LINK)
        self.assertEqual(LINK["url"], link.url)
        self.assertEqual(utc_datetime(2030, 1, 1), link.expires)

    def test_link_without_expiry(self) -> None:
        self.assertIsNone(Link(url=LINK["url"]).expires)


class TestThumbnailOptions(unittest.TestCase):
    def test_str(self) -> None:
        self.assertEqual("xl", str(ThumbnailSize.XL))
        self.assertEqual("png", str(ThumbnailFormat.PNG))
        self.assertIs(ThumbnailSize.M, ThumbnailSize("m"))
