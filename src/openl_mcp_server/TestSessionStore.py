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

import logging
import threading
import time

DEFAULT_CORRELATION_HEADER = 'x-test-execution-id'

class SessionHeaderPolicy:
    """
    Allow-list of the response headers captured from a test start response and replayed
    on every subsequent request polling the results of that test execution.

    Attributes:
        correlation_header (str): name of the header carrying the ID of the test execution
        extra_headers (tuple): names of other headers to capture and replay verbatim
        capture_cookies (bool): capture the Set-Cookie headers and replay them as a Cookie header
    """
    def __init__(self, correlation_header: str = DEFAULT_CORRELATION_HEADER,
                 extra_headers: list[str] | tuple = (), capture_cookies: bool = True):
        self.correlation_header = correlation_header.strip().lower()
        self.extra_headers      = tuple(h.strip().lower() for h in extra_headers if h and h.strip())
        self.capture_cookies    = capture_cookies


class TestSession:
    """
    The correlation headers of the last test execution started on a project.
    Instances are never modified once created.
    """
    __test__ = False    # not a pytest test class

    def __init__(self, project_key: str, execution_id: str | None, session_cookie: str | None,
                 correlation_header: str = DEFAULT_CORRELATION_HEADER,
                 extra_headers: dict[str, str] | None = None, captured_at: float | None = None):
        self.project_key        = project_key
        self.execution_id       = execution_id
        self.session_cookie     = session_cookie
        self.correlation_header = correlation_header
        self.extra_headers      = dict(extra_headers or {})
        self.captured_at        = captured_at if captured_at is not None else time.time()

    def request_headers(self) -> dict[str, str]:
        """Headers to attach to the requests polling the results of this test execution."""
        headers = {}
        if self.execution_id is not None:
            headers[self.correlation_header] = self.execution_id
        headers |= self.extra_headers
        if self.session_cookie:
            headers['Cookie'] = self.session_cookie
        return headers

    def __repr__(self):
        # never display the cookie value
        return f"TestSession(project_key={self.project_key!r}, execution_id={self.execution_id!r}, " \
               f"cookie={'set' if self.session_cookie else 'none'}, captured_at={self.captured_at})"


def parse_set_cookie(values) -> str | None:
    """
    Converts one or several Set-Cookie header values into the value of a Cookie header,
    eg. ['JSESSIONID=abc; Path=/', 'route=1; HttpOnly'] -> 'JSESSIONID=abc; route=1'
    """
    if values is None:
        return None
    if isinstance(values, str):
        values = [values]
    cookies = []
    for value in values:
        name_value = str(value).split(';')[0].strip()
        if '=' in name_value and name_value.split('=', 1)[0].strip():
            cookies.append(name_value)
    return '; '.join(cookies) if cookies else None


class TestSessionStore:
    """
    Keeps, for each project, the correlation headers of the last test execution started by this process.
    A new test execution on a project replaces the previous one (last writer wins).
    Nothing is written to disk.
    """
    __test__ = False

    def __init__(self, policy: SessionHeaderPolicy | None = None):
        self.logger   = logging.getLogger(__name__)
        self.policy   = policy or SessionHeaderPolicy()
        self._lock    = threading.Lock()
        self._sessions: dict[str, TestSession] = {}

    def commit(self, project_key: str, headers: dict) -> TestSession:
        """
        Extracts the allow-listed headers from the response of a test start request
        and stores them for the project, overwriting any previous session.
        """
        lower = {}
        for key, value in (headers or {}).items():
            lower.setdefault(key.lower(), value)

        execution_id = lower.get(self.policy.correlation_header)
        if isinstance(execution_id, list):
            execution_id = ', '.join(execution_id)

        extra_headers = {}
        for name in self.policy.extra_headers:
            if (value := lower.get(name)) is not None:
                extra_headers[name] = ', '.join(value) if isinstance(value, list) else str(value)

        session_cookie = parse_set_cookie(lower.get('set-cookie')) if self.policy.capture_cookies else None

        session = TestSession(project_key=project_key,
                              execution_id=execution_id,
                              session_cookie=session_cookie,
                              correlation_header=self.policy.correlation_header,
                              extra_headers=extra_headers)

        if execution_id is None and session_cookie is None:
            self.logger.warning("No test execution header nor session cookie received for project '%s'", project_key)

        with self._lock:
            self._sessions[project_key] = session
        self.logger.info("Test execution session stored for project '%s' (execution id: %s)", project_key, execution_id)
        return session

    def get(self, project_key: str) -> TestSession | None:
        """Returns the session of the project, or None if no test execution was started on it."""
        with self._lock:
            return self._sessions.get(project_key)
