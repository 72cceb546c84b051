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

from skybox.common.test_tools import USER_ID

JSON_HEADERS = {"Content-Type": "application/json"}

FILE_METADATA = {
    "size": "225.4KB",
    "rev": "35e97029684fe",
    "thumb_exists": False,
    "bytes": 230783,
    "modified": "Tue, 19 Jul 2011 21:55:38 +0000",
    "client_mtime": "Mon, 18 Jul 2011 18:04:35 +0000",
    "path": "/Getting_Started.pdf",
    "is_dir": False,
    "icon": "page_white_acrobat",
    "root": "dropbox",
    "mime_type": "application/pdf",
}

FOLDER_METADATA = {
    "size": "0 bytes",
    "hash": "37eb1ba1849d4b0fb0b28caf7ef3af52",
    "bytes": 0,
    "thumb_exists": False,
    "path": "/Photos",
    "is_dir": True,
    "icon": "folder",
    "root": "dropbox",
    "contents": [
        {
            "size": "2.3MB",
            "rev": "38af1b183490",
            "thumb_exists": True,
            "bytes": 2453963,
            "modified": "Mon, 07 Apr 2014 23:13:16 +0000",
            "client_mtime": "Thu, 29 Aug 2013 01:12:02 +0000",
            "path": "/Photos/flower.jpg",
            "is_dir": False,
            "icon": "page_white_picture",
            "root": "dropbox",
            "mime_type": "image/jpeg",
        }
    ],
}

ACCOUNT_INFO = {
    "referral_link": "https://www.skybox.io/referrals/r1a2n3d4m5s6t7",
    "display_name": "John P. User",
    "uid": int(USER_ID),
    "country": "US",
    "email": "john@example.com",
    "quota_info": {"shared": 253738410565, "quota": 107374182400000, "normal": 680031877871},
}

LINK = {"url": "https://db.tt/c0mFuu1Y", "expires": "Tue, 01 Jan 2030 00:00:00 +0000"}
