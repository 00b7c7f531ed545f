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
import re
from urllib.parse import quote, unquote
import requests
from .Credentials import Credentials
from .Errors import RemoteRequestFailed, RequestTimeout, sanitize

PERCENT_ENCODED = re.compile(r'%[0-9A-Fa-f]{2}')

def normalize_project_id(project_id: str) -> str:
    """
    Returns the project ID as OpenL Studio knows it: trimmed, and decoded if it
    already contains percent-encoded sequences. 'a%20b' and 'a b' designate the same project.
    """
    normalized = project_id.strip()
    if PERCENT_ENCODED.search(normalized):
        normalized = unquote(normalized)
    return normalized

def build_project_path(project_id: str) -> str:
    """
    Returns the URL-safe path of a project, eg. /projects/ZGVzaWduOnByb2plY3Qx
    The project ID is an opaque value returned by OpenL Studio, encoded exactly once.
    """
    return '/projects/' + quote(normalize_project_id(project_id), safe='')


class ApiResponse:
    """
    The raw outcome of a successful call to the OpenL Studio REST API.

    Attributes:
        status_code (int): HTTP status, eg. 200 or 202
        headers    (dict): response headers. 'Set-Cookie' is a list holding every Set-Cookie header received
        body            : decoded JSON, text, or None when the response has no content
    """
    def __init__(self, status_code: int, headers: dict, body=None):
        self.status_code = status_code
        self.headers     = headers
        self.body        = body


class OpenLClient:
    """
    Performs the authenticated HTTP calls to the OpenL Studio REST API.
    """

    def __init__(self, credentials: Credentials):
        self.logger = logging.getLogger(__name__)
        self.credentials = credentials

    def request(self, method: str, path: str, params: dict | None = None, json=None,
                headers: dict | None = None, project_id: str | None = None) -> ApiResponse:
        """
        Invokes an OpenL Studio REST API endpoint.
        Raises RemoteRequestFailed if OpenL Studio (or the OAuth2 token endpoint) cannot be reached,
        answers with a non-2xx status or with an unreadable body,
        and RequestTimeout if no answer is received within the configured timeout.

        Args:
            method (str): GET, POST, PATCH
            path   (str): path relative to the base URL, eg. /projects/{projectId}/tests/run
            params (dict): query parameters (None values are dropped)
            json   (dict): JSON body
            headers(dict): additional headers for this request only
            project_id (str): used to give some context in the error messages
        """
        url = self.credentials.openl_url + path
        log_url = sanitize(url)
        params = {k: v for k, v in (params or {}).items() if v is not None}

        session = None
        try:
            # with OAuth2, creating the session fetches an access token
            session = self.credentials.get_session()
            session.headers.update({'Accept': 'application/json'})
            if headers:
                session.headers.update(headers)

            response = session.request(method=method,
                                       url=url,
                                       headers=session.headers,
                                       params=params,
                                       json=json,
                                       timeout=self.credentials.timeout)
        except requests.exceptions.Timeout as e:
            self.logger.error("%s %s - timeout after %ss", method, log_url, self.credentials.timeout)
            raise RequestTimeout(f"OpenL Studio did not answer within {self.credentials.timeout} seconds",
                                 method=method, endpoint=path, project_id=project_id) from e
        except requests.exceptions.RequestException as e:
            self.logger.error("%s %s - %s", method, log_url, sanitize(e))
            status_code = e.response.status_code if e.response is not None else None
            raise RemoteRequestFailed(f"Unable to reach OpenL Studio: {e}", status_code=status_code,
                                      method=method, endpoint=path, project_id=project_id) from e
        finally:
            if session is not None:
                session.close()

        self.logger.info("%s %s - %s", method, log_url, response.status_code)

        if 200 <= response.status_code < 300:
            try:
                body = self._decode_body(response)
            except ValueError as e:
                snippet = response.text[:200] if response.text else ''
                self.logger.error("%s %s - invalid JSON response: %s", method, log_url, sanitize(snippet))
                raise RemoteRequestFailed(f"OpenL Studio returned an invalid JSON response: {snippet}",
                                          status_code=response.status_code,
                                          method=method, endpoint=path, project_id=project_id) from e
            return ApiResponse(status_code=response.status_code,
                               headers=self._collect_headers(response),
                               body=body)

        err = response.content.decode('utf-8', errors='replace') if response.content else ''
        if err == '':
            err = response.reason or 'Request failed'
        self.logger.error("Request error, status: %s, error: %s", response.status_code, sanitize(err))
        raise RemoteRequestFailed(err, status_code=response.status_code,
                                  method=method, endpoint=path, project_id=project_id)

    def _collect_headers(self, response) -> dict:
        # requests folds repeated Set-Cookie headers into one string: read them from the raw headers
        headers = dict(response.headers)
        for key in list(headers):
            if key.lower() == 'set-cookie':
                del headers[key]
        raw = getattr(response, 'raw', None)
        cookies = raw.headers.getlist('Set-Cookie') if raw is not None else []
        if not cookies and response.headers.get('Set-Cookie'):
            cookies = [response.headers.get('Set-Cookie')]
        if cookies:
            headers['Set-Cookie'] = list(cookies)
        return headers

    def _decode_body(self, response):
        if not response.content:
            return None
        content_type = response.headers.get('Content-Type', '')
        if 'json' in content_type:
            return response.json()
        return response.text

    def get_project(self, project_id: str) -> dict:
        return self.request('GET', build_project_path(project_id), project_id=project_id).body or {}

    def open_project(self, project_id: str) -> ApiResponse:
        return self.request('PATCH', build_project_path(project_id),
                            json={'status': 'OPENED'}, project_id=project_id)

    def start_tests(self, project_id: str, table_id: str | None = None, test_ranges: str | None = None) -> ApiResponse:
        return self.request('POST', build_project_path(project_id) + '/tests/run',
                            params={'tableId': table_id, 'testRanges': test_ranges},
                            project_id=project_id)

    def get_tests_summary(self, project_id: str, headers: dict, params: dict | None = None) -> ApiResponse:
        return self.request('GET', build_project_path(project_id) + '/tests/summary',
                            params=params, headers=headers, project_id=project_id)
