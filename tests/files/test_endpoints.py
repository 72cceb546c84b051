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

from skybox.common import EmptyResponse, RequestMethod
from skybox.files import Endpoint, Host, Metadata, Operation


class TestOperations(unittest.TestCase):
    def test_operation_names_are_unique(self) -> None:
        names = [operation.endpoint.name for operation in Operation]
        self.assertEqual(len(names), len(set(names)))
        for operation in Operation:
            self.assertEqual(operation.name.lower(), str(operation))

    @parameterized.expand(
        [
            (Operation.UPLOAD_FILE,),
            (Operation.DOWNLOAD_FILE,),
            (Operation.DOWNLOAD_THUMBNAIL,),
        ]
    )
    def test_content_operations(self, operation: Operation) -> None:
        self.assertIs(Host.CONTENT, operation.endpoint.host)

    def test_api_operations(self) -> None:
        content = {Operation.UPLOAD_FILE, Operation.DOWNLOAD_FILE, Operation.DOWNLOAD_THUMBNAIL}
        for operation in set(Operation) - content:
            self.assertIs(Host.API, operation.endpoint.host, operation)

    @parameterized.expand(
        [
            (Operation.GET_ACCOUNT_INFO, False),
            (Operation.CREATE_FOLDER, False),
            (Operation.MOVE_PATH, False),
            (Operation.GET_METADATA, True),
            (Operation.UPLOAD_FILE, True),
            (Operation.SEARCH, True),
        ]
    )
    def test_addresses_path(self, operation: Operation, expected: bool) -> None:
        self.assertEqual(expected, operation.endpoint.addresses_path)

    def test_download_operations_parse_headers(self) -> None:
        self.assertIs(EmptyResponse, Operation.DOWNLOAD_FILE.endpoint.response_type)
        self.assertIs(Metadata, Operation.GET_METADATA.endpoint.response_type)

    def test_endpoint_is_immutable(self) -> None:
        endpoint = Endpoint("test", RequestMethod.GET, Host.API, "/test", Metadata)
        with self.assertRaises(AttributeError):
            endpoint.name = "other"  # type: ignore[misc]
