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

from skybox.oauth import Credential

ACCESS_TOKEN = "unittest-access-token"
REFRESH_TOKEN = "unittest-refresh-token"
USER_ID = "12345"

CLIENT_ID = "unittest-client-id"
CLIENT_SECRET = "unittest-client-secret"

API_URL = "https://api.unittest.localhost/1"
CONTENT_URL = "https://content.unittest.localhost/1"
WEB_URL = "https://www.unittest.localhost/1"
REDIRECT_URL = "http://localhost:32369/auth/callback"

CREDENTIAL = Credential(access_token=ACCESS_TOKEN, refresh_token=REFRESH_TOKEN, user_id=USER_ID)
