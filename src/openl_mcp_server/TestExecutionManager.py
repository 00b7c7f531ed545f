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
import time
from .OpenLClient import OpenLClient, ApiResponse, normalize_project_id
from .TestSessionStore import TestSessionStore
from .TestResults import ExecutionSummary
from .Errors import InvalidArgument, NoActiveTestSession, RemoteRequestFailed

# project statuses for which the tests can be run without opening the project first
OPENED_STATUSES  = ('OPENED', 'EDITING')
REPOSITORY_LOCAL = 'local'
ERROR_LOCAL_REPOSITORY = "Project is in a local repository (repository: 'local'). " \
                         "Local repositories are not connected to a remote Git; opening the project is not supported. " \
                         "Use projects from a design repository connected to a remote Git."

MAX_PAGE_SIZE          = 200
DEFAULT_MAX_WAIT       = 60     # seconds
MAX_WAIT               = 600    # seconds
DEFAULT_MAX_SCAN_PAGES = 1000

TEST_RANGES = re.compile(r'^\s*\d+(\s*-\s*\d+)?(\s*,\s*\d+(\s*-\s*\d+)?)*\s*$')

def validate_project_id(project_id) -> str:
    if not isinstance(project_id, str) or not project_id.strip():
        raise InvalidArgument(f"Invalid projectId. Expected a non-empty string, got '{project_id}'.")
    return project_id.strip()

def validate_string(name: str, value, required: bool = False) -> str | None:
    if value is None and not required:
        return None
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"Invalid {name}. Expected a non-empty string, got '{value}'.")
    return value.strip()

def validate_test_ranges(test_ranges) -> str | None:
    test_ranges = validate_string('testRanges', test_ranges)
    if test_ranges is not None:
        if not TEST_RANGES.match(test_ranges):
            raise InvalidArgument(f"Invalid testRanges '{test_ranges}'. Expected a list of test numbers or ranges, eg. '1-3,5'.")
        test_ranges = re.sub(r'\s+', '', test_ranges)
    return test_ranges

def validate_int(name: str, value, minimum: int = 0, maximum: int | None = None) -> int | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"Invalid {name}. Expected an integer, got '{value}'.")
    if value < minimum:
        raise InvalidArgument(f"{name} must be >= {minimum}, got {value}.")
    if maximum is not None and value > maximum:
        raise InvalidArgument(f"{name} must be <= {maximum}, got {value}.")
    return value

def validate_bool(name: str, value) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    raise InvalidArgument(f"Invalid {name}. Expected a boolean, got '{value}'.")

def validate_max_wait(max_wait_seconds) -> float:
    if max_wait_seconds is None:
        return DEFAULT_MAX_WAIT
    if isinstance(max_wait_seconds, bool) or not isinstance(max_wait_seconds, (int, float)) or max_wait_seconds <= 0:
        raise InvalidArgument(f"Invalid maxWaitSeconds. Expected a positive number, got '{max_wait_seconds}'.")
    return min(float(max_wait_seconds), MAX_WAIT)


class TestExecutionManager:
    """
    Starts test executions in OpenL Studio and retrieves their results.

    A test execution is asynchronous and bound to a server-side session: the response of the
    request starting it carries correlation headers (execution id, session cookie) that must be
    sent again with every request fetching the results. Those headers are kept in a TestSessionStore.
    """
    __test__ = False

    def __init__(self, client: OpenLClient, store: TestSessionStore,
                 initial_delay: float = 1.0, max_delay: float = 10.0,
                 max_scan_pages: int = DEFAULT_MAX_SCAN_PAGES,
                 sleep=time.sleep, clock=time.monotonic):
        self.logger = logging.getLogger(__name__)
        self.client = client
        self.store  = store
        self.initial_delay  = initial_delay
        self.max_delay      = max_delay
        self.max_scan_pages = max_scan_pages
        self._sleep = sleep
        self._clock = clock

    # -------------------------------------------------------------------------
    # starting a test execution
    # -------------------------------------------------------------------------

    def _open_project(self, project_id: str):
        try:
            self.client.open_project(project_id)
            self.logger.info("Project '%s' opened", project_id)
        except RemoteRequestFailed as e:
            raise type(e)(f"Failed to open project: {e.message}. Project must be opened before running tests.",
                          status_code=e.status_code, method=e.method, endpoint=e.endpoint,
                          project_id=project_id) from e

    def _ensure_project_opened(self, project_id: str) -> bool:
        """Opens the project if needed. Returns True if the project was opened."""
        try:
            project = self.client.get_project(project_id)
        except RemoteRequestFailed as e:
            # the status is unknown: try to open the project anyway (once)
            self.logger.warning("Unable to get the status of project '%s' (%s), trying to open it", project_id, e)
            self._open_project(project_id)
            return True

        if project.get('status') in OPENED_STATUSES:
            return False
        if project.get('repository') == REPOSITORY_LOCAL:
            raise InvalidArgument(ERROR_LOCAL_REPOSITORY)

        self.logger.info("Project '%s' is %s, opening it", project_id, project.get('status'))
        self._open_project(project_id)
        return True

    def start_project_tests(self, project_id, table_id=None, test_ranges=None) -> dict:
        """
        Starts the execution of the tests of a project, optionally restricted to one table
        or to some test ranges (eg. '1-3,5'). The project is opened first if needed.
        """
        project_id  = validate_project_id(project_id)
        table_id    = validate_string('tableId', table_id)
        test_ranges = validate_test_ranges(test_ranges)

        project_was_opened = self._ensure_project_opened(project_id)

        try:
            response = self.client.start_tests(project_id, table_id, test_ranges)
        except RemoteRequestFailed as e:
            # 409: the project was closed in the meantime
            if e.status_code != 409 or project_was_opened:
                raise
            self.logger.info("Project '%s' is not opened, opening it and starting the tests again", project_id)
            self._open_project(project_id)
            project_was_opened = True
            response = self.client.start_tests(project_id, table_id, test_ranges)

        session = self.store.commit(normalize_project_id(project_id), response.headers)

        return {'status':           'started',
                'projectId':        project_id,
                'tableId':          table_id,
                'testRanges':       test_ranges,
                'projectWasOpened': project_was_opened,
                'executionId':      session.execution_id,
                'message':          'Test execution started' + (' (project was automatically opened)' if project_was_opened else '')}

    # -------------------------------------------------------------------------
    # polling the results
    # -------------------------------------------------------------------------

    def _fetch_summary(self, project_id: str, params: dict) -> ApiResponse:
        session = self.store.get(normalize_project_id(project_id))
        if session is None:
            raise NoActiveTestSession(project_id)
        return self.client.get_tests_summary(project_id, headers=session.request_headers(), params=params)

    def _fetch_page(self, project_id: str, page, size, failures_only, failures) -> ExecutionSummary:
        response = self._fetch_summary(project_id, {'page':         page,
                                                    'size':         size,
                                                    'failuresOnly': True if failures_only else None,
                                                    'failures':     failures})
        # 202: the tests are still running
        return ExecutionSummary.from_json(response.body, completed=response.status_code != 202)

    def get_summary(self, project_id, failures=None) -> dict:
        """
        Returns the aggregated results (total, failed, passed) of the last test execution, without the test cases.
        """
        project_id = validate_project_id(project_id)
        failures   = validate_int('failures', failures)

        response = self._fetch_summary(project_id, {'failures': failures})
        summary  = ExecutionSummary.from_json(response.body, completed=response.status_code != 202)
        return {'projectId': project_id} | summary.totals()

    def get_results(self, project_id, page=None, size=None, failures_only=None, failures=None) -> ExecutionSummary:
        """
        Returns one page of the results of the last test execution.
        Pages contain test tables, and each test table bundles one or several tests.
        """
        project_id    = validate_project_id(project_id)
        page          = validate_int('page', page)
        size          = validate_int('size', size, minimum=1, maximum=MAX_PAGE_SIZE)
        failures_only = validate_bool('failuresOnly', failures_only)
        failures      = validate_int('failures', failures)

        return self._fetch_page(project_id, page, size, failures_only, failures)

    def get_results_by_table(self, project_id, table_id, page=None, size=None, failures_only=None, failures=None) -> ExecutionSummary:
        """
        Returns the results of the tests of one table.
        Pages are scanned from 'page' (or the first one) until one contains the table, or until there are no more pages.
        An empty summary is returned if the table is not found.
        """
        project_id    = validate_project_id(project_id)
        table_id      = validate_string('tableId', table_id, required=True)
        page          = validate_int('page', page) or 0
        size          = validate_int('size', size, minimum=1, maximum=MAX_PAGE_SIZE)
        failures_only = validate_bool('failuresOnly', failures_only)
        failures      = validate_int('failures', failures)

        current = page
        last    = None
        for _ in range(self.max_scan_pages):
            last = self._fetch_page(project_id, current, size, failures_only, failures)
            if not last.test_cases:
                break   # no more pages

            matching = last.filtered(table_id)
            if matching.test_cases:
                self.logger.debug("Test table '%s' found in page %d", table_id, current)
                return matching

            if last.total_pages is not None:
                if current >= last.total_pages - 1:
                    break
            elif last.page_size > 0 and last.number_of_elements < last.page_size:
                break   # partial page: this is the last one
            current += 1
        else:
            self.logger.warning("Stopped looking for test table '%s' after %d pages", table_id, self.max_scan_pages)

        self.logger.info("No test results found for table '%s' in project '%s'", table_id, project_id)
        return ExecutionSummary(page_number = page,
                                page_size   = size or (last.page_size if last else 0),
                                total_pages = last.total_pages if last else None,
                                completed   = last.completed if last else True)

    # -------------------------------------------------------------------------
    # waiting for the completion
    # -------------------------------------------------------------------------

    def wait_for_summary(self, project_id, wait_for_completion=False, max_wait_seconds=None, failures=None) -> dict:
        """
        Returns the aggregated results of the last test execution.
        If wait_for_completion is True, polls until the execution completes, with an exponential backoff,
        or until max_wait_seconds elapsed. A timeout is not an error: the last summary is returned with
        'completed' False and 'timedOut' True.
        """
        wait_for_completion = validate_bool('waitForCompletion', wait_for_completion)
        if not wait_for_completion:
            return self.get_summary(project_id, failures)

        max_wait = validate_max_wait(max_wait_seconds)
        deadline = self._clock() + max_wait
        delay    = self.initial_delay
        attempts = 1
        summary  = self.get_summary(project_id, failures)

        while not summary['completed']:
            remaining = deadline - self._clock()
            if remaining <= 0:
                self.logger.info("Test execution of project '%s' still running after %ss", summary['projectId'], max_wait)
                return summary | {'timedOut': True, 'attempts': attempts}
            self._sleep(min(delay, remaining))
            summary   = self.get_summary(project_id, failures)
            attempts += 1
            delay     = min(delay * 2, self.max_delay)

        return summary | {'timedOut': False, 'attempts': attempts}
