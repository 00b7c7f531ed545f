# Copyright contributors to the OpenL Studio MCP Server project
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import re

# (pattern, replacement) applied in order to any text that may reach the AI agent or the logs
SENSITIVE_PATTERNS = [
    (re.compile(r'Bearer\s+[A-Za-z0-9\-._~+/]+=*', re.IGNORECASE),                      'Bearer [REDACTED]'),
    (re.compile(r'Token\s+[A-Za-z0-9\-._~+/]+=*', re.IGNORECASE),                       'Token [REDACTED]'),
    (re.compile(r'Basic\s+[A-Za-z0-9+/]{8,}=*', re.IGNORECASE),                         'Basic [REDACTED]'),
    (re.compile(r'openl_pat_[A-Za-z0-9\-._~+/]+', re.IGNORECASE),                       'openl_pat_[REDACTED]'),
    (re.compile(r'(://)[^:@/\s]+:[^@/\s]+@'),                                           r'\1[REDACTED]:[REDACTED]@'),
    (re.compile(r'api[_-]?key["\s:=]+[A-Za-z0-9\-._~+/]+', re.IGNORECASE),              'api_key=[REDACTED]'),
    (re.compile(r'client[_-]?secret["\s:=]+[A-Za-z0-9\-._~+/]+', re.IGNORECASE),        'client_secret=[REDACTED]'),
    (re.compile(r'access[_-]?token["\s:=]+[A-Za-z0-9\-._~+/]+', re.IGNORECASE),         'access_token=[REDACTED]'),
    (re.compile(r'refresh[_-]?token["\s:=]+[A-Za-z0-9\-._~+/]+', re.IGNORECASE),        'refresh_token=[REDACTED]'),
    (re.compile(r'password["\s:=]+[^\s",&]+', re.IGNORECASE),                           'password=[REDACTED]'),
]

def sanitize(message) -> str:
    """
    Redact credentials and tokens from a message before it is logged or returned to the MCP client.
    """
    if message is None:
        return ''
    text = str(message)
    for pattern, replacement in SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class OpenLError(Exception):
    """Base class of the errors raised by the OpenL Studio MCP server."""


class InvalidArgument(OpenLError, ValueError):
    """A required argument is missing or malformed. Raised before any request is sent."""


class NoActiveTestSession(OpenLError):
    """
    Raised when test results are requested for a project on which no test execution was started
    by this server process. No request is sent to OpenL Studio in that case.
    """
    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"No test execution session found for project '{project_id}'. "
                         f"Use start_project_tests() to start test execution first.")


class RemoteRequestFailed(OpenLError):
    """
    OpenL Studio answered with a non-success HTTP status, or could not be reached.

    Attributes:
        status_code (int): HTTP status returned by OpenL Studio (None if no response was received)
        method      (str): GET, POST, PATCH
        endpoint    (str): path of the REST API endpoint eg. /projects/abc/tests/run
        project_id  (str): the project the request was about (optional)
    """
    def __init__(self, message: str, status_code: int | None = None, method: str | None = None,
                 endpoint: str | None = None, project_id: str | None = None):
        self.message     = sanitize(message)
        self.status_code = status_code
        self.method      = method
        self.endpoint    = endpoint
        self.project_id  = project_id
        super().__init__(self._describe())

    def _describe(self) -> str:
        context = []
        if self.method and self.endpoint: context.append(f"{self.method} {self.endpoint}")
        if self.status_code is not None:  context.append(f"status {self.status_code}")
        if self.project_id:               context.append(f"project '{self.project_id}'")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class RequestTimeout(RemoteRequestFailed):
    """The HTTP call to OpenL Studio exceeded the configured timeout."""
