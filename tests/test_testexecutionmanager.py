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

import pytest
from unittest.mock import Mock
import json
from openl_mcp_server.Credentials import Credentials
from openl_mcp_server.OpenLClient import OpenLClient
from openl_mcp_server.TestSessionStore import TestSessionStore, SessionHeaderPolicy
from openl_mcp_server.TestExecutionManager import TestExecutionManager
from openl_mcp_server.Errors import InvalidArgument, NoActiveTestSession, RemoteRequestFailed

BASE_URL = 'http://localhost:8080/rest'
PROJECT  = 'design-project1'
PROJECT_PATH = '/projects/design-project1'

def make_response(status_code=200, body=None, headers=None, set_cookies=None, error=None):
    response = Mock()
    response.status_code = status_code
    response.reason = 'Reason'
    response.headers = dict(headers or {})
    if body is not None:
        response.headers['Content-Type'] = 'application/json'
        response.content = json.dumps(body).encode('utf-8')
        response.json.return_value = body
    elif error is not None:
        response.content = error.encode('utf-8')
    else:
        response.content = b''
    response.raw = Mock()
    response.raw.headers.getlist.return_value = list(set_cookies or [])
    return response

class FakeOpenL:
    """Answers the requests sent through mocked sessions with canned responses, and records them."""

    def __init__(self):
        self.routes   = {}
        self.requests = []

    def on(self, method, path, *responses):
        # responses are consumed in order, the last one is repeated
        self.routes[(method, path)] = list(responses)

    def session(self):
        session = Mock()
        session.headers = {'Authorization': 'Basic dGVzdDp0ZXN0'}
        session.request.side_effect = self._request
        return session

    def _request(self, method, url, headers, params, json, timeout):
        path = url[len(BASE_URL):]
        self.requests.append({'method': method, 'path': path, 'headers': dict(headers), 'params': dict(params), 'json': json})
        responses = self.routes.get((method, path))
        if not responses:
            return make_response(404, error='Not found')
        return responses.pop(0) if len(responses) > 1 else responses[0]

    def sent(self, method, path):
        return [r for r in self.requests if r['method'] == method and r['path'] == path]

def summary_body(test_cases, page_number=0, page_size=50, total_pages=None):
    body = {'testCases':        test_cases,
            'executionTimeMs':  sum(tc.get('executionTimeMs', 0) for tc in test_cases),
            'numberOfTests':    sum(tc['numberOfTests'] for tc in test_cases),
            'numberOfFailures': sum(tc['numberOfFailures'] for tc in test_cases),
            'pageNumber':       page_number,
            'pageSize':         page_size,
            'numberOfElements': len(test_cases)}
    if total_pages is not None:
        body['totalPages'] = total_pages
    return body

def test_case(table_id, tests=1, failures=0):
    return {'name': table_id, 'tableId': table_id, 'executionTimeMs': 1.5,
            'numberOfTests': tests, 'numberOfFailures': failures, 'testUnits': []}

test_case.__test__ = False  # payload helper, not a test

@pytest.fixture
def fake():
    fake = FakeOpenL()
    fake.on('GET', PROJECT_PATH, make_response(200, {'id': PROJECT, 'repository': 'design', 'status': 'OPENED'}))
    fake.on('POST', PROJECT_PATH + '/tests/run',
            make_response(202, headers={'x-test-execution-id': 's1', 'x-custom-header': 'custom-value', 'Server': 'Tomcat'},
                          set_cookies=['JSESSIONID=abc123; Path=/; HttpOnly']))
    return fake

@pytest.fixture
def credentials(fake):
    creds = Mock(spec=Credentials)
    creds.openl_url = BASE_URL
    creds.timeout = 30
    creds.get_session.side_effect = fake.session
    return creds

@pytest.fixture
def store():
    return TestSessionStore()

@pytest.fixture
def manager(credentials, store):
    return TestExecutionManager(client=OpenLClient(credentials), store=store)


class TestStartProjectTests:

    def test_start_commits_session(self, manager, store, fake):
        result = manager.start_project_tests(PROJECT)

        assert result['status'] == 'started'
        assert result['projectWasOpened'] is False
        assert result['executionId'] == 's1'
        assert result['message'] == 'Test execution started'
        session = store.get(PROJECT)
        assert session.execution_id == 's1'
        assert session.session_cookie == 'JSESSIONID=abc123'

    def test_start_with_table_and_ranges(self, manager, fake):
        manager.start_project_tests(PROJECT, table_id='Test_calculatePremium_1234', test_ranges='1 - 3, 5')

        [run] = fake.sent('POST', PROJECT_PATH + '/tests/run')
        assert run['params'] == {'tableId': 'Test_calculatePremium_1234', 'testRanges': '1-3,5'}

    def test_start_without_optional_params(self, manager, fake):
        manager.start_project_tests(PROJECT)

        [run] = fake.sent('POST', PROJECT_PATH + '/tests/run')
        assert run['params'] == {}

    @pytest.mark.parametrize("project_id", [None, '', '   ', 42])
    def test_invalid_project_id(self, manager, fake, project_id):
        with pytest.raises(InvalidArgument, match='projectId'):
            manager.start_project_tests(project_id)
        assert fake.requests == []

    @pytest.mark.parametrize("test_ranges", ['abc', '1-', '1,,2', '-3'])
    def test_invalid_test_ranges(self, manager, fake, test_ranges):
        with pytest.raises(InvalidArgument, match='testRanges'):
            manager.start_project_tests(PROJECT, test_ranges=test_ranges)
        assert fake.requests == []

    def test_closed_project_is_opened(self, manager, store, fake):
        fake.on('GET', PROJECT_PATH, make_response(200, {'id': PROJECT, 'repository': 'design', 'status': 'CLOSED'}))
        fake.on('PATCH', PROJECT_PATH, make_response(204))

        result = manager.start_project_tests(PROJECT)

        [patch] = fake.sent('PATCH', PROJECT_PATH)
        assert patch['json'] == {'status': 'OPENED'}
        assert result['projectWasOpened'] is True
        assert 'automatically opened' in result['message']
        assert len(fake.sent('POST', PROJECT_PATH + '/tests/run')) == 1
        assert store.get(PROJECT).execution_id == 's1'

    def test_editing_project_is_not_opened(self, manager, fake):
        fake.on('GET', PROJECT_PATH, make_response(200, {'id': PROJECT, 'repository': 'design', 'status': 'EDITING'}))

        result = manager.start_project_tests(PROJECT)

        assert fake.sent('PATCH', PROJECT_PATH) == []
        assert result['projectWasOpened'] is False

    def test_project_status_unavailable_opens_anyway(self, manager, fake):
        fake.on('GET', PROJECT_PATH, make_response(500, error='Internal error'))
        fake.on('PATCH', PROJECT_PATH, make_response(204))

        result = manager.start_project_tests(PROJECT)

        assert len(fake.sent('PATCH', PROJECT_PATH)) == 1
        assert result['projectWasOpened'] is True

    def test_open_failure_is_not_retried(self, manager, store, fake):
        fake.on('GET', PROJECT_PATH, make_response(200, {'id': PROJECT, 'repository': 'design', 'status': 'CLOSED'}))
        fake.on('PATCH', PROJECT_PATH, make_response(403, error='Forbidden'))

        with pytest.raises(RemoteRequestFailed, match='Failed to open project: Forbidden') as exc_info:
            manager.start_project_tests(PROJECT)

        assert exc_info.value.status_code == 403
        assert exc_info.value.project_id == PROJECT
        assert len(fake.sent('PATCH', PROJECT_PATH)) == 1
        assert fake.sent('POST', PROJECT_PATH + '/tests/run') == []
        assert store.get(PROJECT) is None

    def test_local_repository_cannot_be_opened(self, manager, fake):
        fake.on('GET', PROJECT_PATH, make_response(200, {'id': PROJECT, 'repository': 'local', 'status': 'LOCAL'}))

        with pytest.raises(InvalidArgument, match='local repository'):
            manager.start_project_tests(PROJECT)
        assert fake.sent('PATCH', PROJECT_PATH) == []

    def test_conflict_opens_and_resubmits_once(self, manager, store, fake):
        fake.on('PATCH', PROJECT_PATH, make_response(204))
        fake.on('POST', PROJECT_PATH + '/tests/run',
                make_response(409, error='Project is not opened'),
                make_response(202, headers={'x-test-execution-id': 's2'}))

        result = manager.start_project_tests(PROJECT)

        assert len(fake.sent('POST', PROJECT_PATH + '/tests/run')) == 2
        assert len(fake.sent('PATCH', PROJECT_PATH)) == 1
        assert result['projectWasOpened'] is True
        assert store.get(PROJECT).execution_id == 's2'

    def test_conflict_after_auto_open_is_raised(self, manager, fake):
        fake.on('GET', PROJECT_PATH, make_response(200, {'id': PROJECT, 'repository': 'design', 'status': 'CLOSED'}))
        fake.on('PATCH', PROJECT_PATH, make_response(204))
        fake.on('POST', PROJECT_PATH + '/tests/run', make_response(409, error='Conflict'))

        with pytest.raises(RemoteRequestFailed) as exc_info:
            manager.start_project_tests(PROJECT)

        assert exc_info.value.status_code == 409
        assert len(fake.sent('POST', PROJECT_PATH + '/tests/run')) == 1

    def test_rejected_start_is_not_retried(self, manager, store, fake):
        fake.on('POST', PROJECT_PATH + '/tests/run', make_response(400, error='Invalid test ranges'))

        with pytest.raises(RemoteRequestFailed, match='Invalid test ranges') as exc_info:
            manager.start_project_tests(PROJECT)

        error = exc_info.value
        assert error.status_code == 400
        assert error.method == 'POST'
        assert error.endpoint == PROJECT_PATH + '/tests/run'
        assert len(fake.sent('POST', PROJECT_PATH + '/tests/run')) == 1
        assert store.get(PROJECT) is None


class TestPolling:

    @pytest.mark.parametrize("call", [
        lambda m: m.get_summary(PROJECT),
        lambda m: m.get_results(PROJECT),
        lambda m: m.get_results_by_table(PROJECT, 'Test_1'),
        lambda m: m.wait_for_summary(PROJECT, wait_for_completion=True),
    ])
    def test_no_session(self, manager, fake, call):
        with pytest.raises(NoActiveTestSession, match="start_project_tests"):
            call(manager)
        assert fake.requests == []

    def test_session_headers_are_sent(self, manager, fake):
        fake.on('GET', PROJECT_PATH + '/tests/summary', make_response(200, summary_body([])))
        manager.start_project_tests(PROJECT)

        manager.get_summary(PROJECT)
        manager.get_results(PROJECT)

        for poll in fake.sent('GET', PROJECT_PATH + '/tests/summary'):
            headers = poll['headers']
            assert headers['x-test-execution-id'] == 's1'
            assert headers['Cookie'] == 'JSESSIONID=abc123'
            assert headers['Accept'] == 'application/json'
            # only the allow-listed headers are replayed
            assert 'x-custom-header' not in headers
            assert 'Server' not in headers
            assert 'Set-Cookie' not in headers

    def test_extra_allow_listed_headers_are_sent(self, credentials, fake):
        manager = TestExecutionManager(client=OpenLClient(credentials),
                                       store=TestSessionStore(SessionHeaderPolicy(extra_headers=['X-Custom-Header'])))
        fake.on('GET', PROJECT_PATH + '/tests/summary', make_response(200, summary_body([])))
        manager.start_project_tests(PROJECT)

        manager.get_summary(PROJECT)

        [poll] = fake.sent('GET', PROJECT_PATH + '/tests/summary')
        assert poll['headers']['x-custom-header'] == 'custom-value'

    def test_second_start_supersedes_first(self, manager, fake):
        fake.on('POST', PROJECT_PATH + '/tests/run',
                make_response(202, headers={'x-test-execution-id': 's1'}, set_cookies=['JSESSIONID=first; Path=/']),
                make_response(202, headers={'x-test-execution-id': 's2'}, set_cookies=['JSESSIONID=second; Path=/']))
        fake.on('GET', PROJECT_PATH + '/tests/summary', make_response(200, summary_body([])))

        manager.start_project_tests(PROJECT)
        manager.start_project_tests(PROJECT)
        manager.get_results(PROJECT)

        [poll] = fake.sent('GET', PROJECT_PATH + '/tests/summary')
        assert poll['headers']['x-test-execution-id'] == 's2'
        assert poll['headers']['Cookie'] == 'JSESSIONID=second'

    def test_session_without_cookie(self, manager, fake):
        fake.on('POST', PROJECT_PATH + '/tests/run', make_response(202, headers={'x-test-execution-id': 's3'}))
        fake.on('GET', PROJECT_PATH + '/tests/summary', make_response(200, summary_body([])))
        manager.start_project_tests(PROJECT)

        manager.get_summary(PROJECT)

        [poll] = fake.sent('GET', PROJECT_PATH + '/tests/summary')
        assert poll['headers']['x-test-execution-id'] == 's3'
        assert 'Cookie' not in poll['headers']

    def test_sessions_are_kept_per_project(self, manager, fake):
        other_path = '/projects/design-project2'
        fake.on('GET', other_path, make_response(200, {'status': 'OPENED'}))
        fake.on('POST', other_path + '/tests/run', make_response(202, headers={'x-test-execution-id': 'other'}))
        fake.on('GET', PROJECT_PATH + '/tests/summary', make_response(200, summary_body([])))

        manager.start_project_tests(PROJECT)
        manager.start_project_tests('design-project2')
        manager.get_summary(PROJECT)

        [poll] = fake.sent('GET', PROJECT_PATH + '/tests/summary')
        assert poll['headers']['x-test-execution-id'] == 's1'

    @pytest.mark.parametrize("started_as, polled_as", [
        ('design project2',   'design%20project2'),
        ('design%20project2', 'design project2'),
    ])
    def test_project_id_spellings_share_session(self, manager, store, fake, started_as, polled_as):
        path = '/projects/design%20project2'
        fake.on('GET', path, make_response(200, {'status': 'OPENED'}))
        fake.on('POST', path + '/tests/run', make_response(202, headers={'x-test-execution-id': 's7'}))
        fake.on('GET', path + '/tests/summary', make_response(200, summary_body([])))

        manager.start_project_tests(started_as)
        manager.get_summary(polled_as)

        [poll] = fake.sent('GET', path + '/tests/summary')
        assert poll['headers']['x-test-execution-id'] == 's7'
        assert store.get('design project2').execution_id == 's7'

    def test_calculate_premium_scenario(self, manager, fake):
        fake.on('POST', PROJECT_PATH + '/tests/run', make_response(202, headers={'x-test-execution-id': 's1'}))
        fake.on('GET', PROJECT_PATH + '/tests/summary',
                make_response(200, {'testCases': [{'tableId': 'Test_calculatePremium_1234', 'numberOfTests': 5, 'numberOfFailures': 0}],
                                    'numberOfTests': 5, 'numberOfFailures': 0}))

        manager.start_project_tests(PROJECT, table_id='Test_calculatePremium_1234')
        results = manager.get_results(PROJECT)

        [poll] = fake.sent('GET', PROJECT_PATH + '/tests/summary')
        assert poll['headers']['x-test-execution-id'] == 's1'
        assert results.number_of_passed == 5
        assert results.number_of_failures == 0
        assert results.test_cases[0].table_id == 'Test_calculatePremium_1234'

    def test_summary_counts(self, manager, fake):
        fake.on('GET', PROJECT_PATH + '/tests/summary',
                make_response(200, summary_body([test_case('T1', 7, 2), test_case('T2', 8, 1)])))
        manager.start_project_tests(PROJECT)

        summary = manager.get_summary(PROJECT, failures=5)

        assert summary == {'projectId': PROJECT, 'executionTimeMs': 3.0,
                           'numberOfTests': 15, 'numberOfFailures': 3, 'numberOfPassed': 12, 'completed': True}
        [poll] = fake.sent('GET', PROJECT_PATH + '/tests/summary')
        assert poll['params'] == {'failures': 5}

    def test_failures_never_exceed_tests(self, manager, fake):
        fake.on('GET', PROJECT_PATH + '/tests/summary',
                make_response(200, {'testCases': [], 'numberOfTests': 2, 'numberOfFailures': 5}))
        manager.start_project_tests(PROJECT)

        summary = manager.get_summary(PROJECT)

        assert summary['numberOfFailures'] == 2
        assert summary['numberOfPassed'] == 0

    def test_pending_summary(self, manager, fake):
        fake.on('GET', PROJECT_PATH + '/tests/summary', make_response(202))
        manager.start_project_tests(PROJECT)

        summary = manager.get_summary(PROJECT)

        assert summary['completed'] is False
        assert summary['numberOfTests'] == 0

    def test_get_results_forwards_pagination(self, manager, fake):
        fake.on('GET', PROJECT_PATH + '/tests/summary',
                make_response(200, summary_body([test_case('T3'), test_case('T4')], page_number=1, page_size=2, total_pages=3)))
        manager.start_project_tests(PROJECT)

        results = manager.get_results(PROJECT, page=1, size=2, failures_only=True, failures=3)

        [poll] = fake.sent('GET', PROJECT_PATH + '/tests/summary')
        assert poll['params'] == {'page': 1, 'size': 2, 'failuresOnly': True, 'failures': 3}
        assert results.offset == 2
        assert results.offset + 1 == 3
        assert results.has_more is True

    def test_failures_only_false_is_not_sent(self, manager, fake):
        fake.on('GET', PROJECT_PATH + '/tests/summary', make_response(200, summary_body([])))
        manager.start_project_tests(PROJECT)

        manager.get_results(PROJECT, failures_only=False)

        [poll] = fake.sent('GET', PROJECT_PATH + '/tests/summary')
        assert poll['params'] == {}

    @pytest.mark.parametrize("kwargs, match", [
        ({'page': -1},        'page'),
        ({'size': 0},         'size'),
        ({'size': 201},       'size'),
        ({'page': 'first'},   'page'),
        ({'failuresOnly': 3}, 'failuresOnly'),
    ])
    def test_invalid_pagination(self, manager, fake, kwargs, match):
        manager.start_project_tests(PROJECT)
        count = len(fake.requests)

        with pytest.raises(InvalidArgument, match=match):
            manager.get_results(PROJECT,
                                page=kwargs.get('page'), size=kwargs.get('size'),
                                failures_only=kwargs.get('failuresOnly'))
        assert len(fake.requests) == count

    def test_remote_error_while_polling(self, manager, fake):
        fake.on('GET', PROJECT_PATH + '/tests/summary', make_response(404, error='Test execution not found'))
        manager.start_project_tests(PROJECT)

        with pytest.raises(RemoteRequestFailed, match='Test execution not found') as exc_info:
            manager.get_summary(PROJECT)
        assert exc_info.value.status_code == 404


class TestResultsByTable:

    def test_table_found_on_first_page(self, manager, fake):
        fake.on('GET', PROJECT_PATH + '/tests/summary',
                make_response(200, summary_body([test_case('T1', 3, 1), test_case('T2', 4, 0), test_case('T1', 2, 0)], page_size=3)))
        manager.start_project_tests(PROJECT)

        results = manager.get_results_by_table(PROJECT, 'T1')

        assert [tc.table_id for tc in results.test_cases] == ['T1', 'T1']
        assert results.number_of_tests == 5
        assert results.number_of_failures == 1
        assert len(fake.sent('GET', PROJECT_PATH + '/tests/summary')) == 1

    def test_pages_are_scanned_until_found(self, manager, fake):
        fake.on('GET', PROJECT_PATH + '/tests/summary',
                make_response(200, summary_body([test_case('T1'), test_case('T2')], page_number=0, page_size=2)),
                make_response(200, summary_body([test_case('T3'), test_case('T4')], page_number=1, page_size=2)),
                make_response(200, summary_body([test_case('T5')], page_number=2, page_size=2)))
        manager.start_project_tests(PROJECT)

        results = manager.get_results_by_table(PROJECT, 'T4', size=2)

        polls = fake.sent('GET', PROJECT_PATH + '/tests/summary')
        assert [p['params']['page'] for p in polls] == [0, 1]
        assert all(p['params']['size'] == 2 for p in polls)
        assert all(p['headers']['x-test-execution-id'] == 's1' for p in polls)
        assert [tc.table_id for tc in results.test_cases] == ['T4']
        assert results.page_number == 1

    def test_scan_starts_at_page(self, manager, fake):
        fake.on('GET', PROJECT_PATH + '/tests/summary',
                make_response(200, summary_body([test_case('T3')], page_number=2, page_size=1)))
        manager.start_project_tests(PROJECT)

        manager.get_results_by_table(PROJECT, 'T3', page=2, size=1)

        [poll] = fake.sent('GET', PROJECT_PATH + '/tests/summary')
        assert poll['params']['page'] == 2

    def test_table_not_found_until_empty_page(self, manager, fake):
        fake.on('GET', PROJECT_PATH + '/tests/summary',
                make_response(200, summary_body([test_case('T1'), test_case('T2')], page_number=0, page_size=2)),
                make_response(200, summary_body([], page_number=1, page_size=2)))
        manager.start_project_tests(PROJECT)

        results = manager.get_results_by_table(PROJECT, 'Unknown', size=2)

        assert results.test_cases == []
        assert results.number_of_tests == 0
        assert results.number_of_elements == 0
        assert len(fake.sent('GET', PROJECT_PATH + '/tests/summary')) == 2

    def test_scan_bounded_by_total_pages(self, manager, fake):
        # the remote never returns an empty page
        fake.on('GET', PROJECT_PATH + '/tests/summary',
                make_response(200, summary_body([test_case('T1'), test_case('T2')], page_size=2, total_pages=3)))
        manager.start_project_tests(PROJECT)

        results = manager.get_results_by_table(PROJECT, 'Unknown')

        assert results.test_cases == []
        assert len(fake.sent('GET', PROJECT_PATH + '/tests/summary')) == 3

    def test_scan_stops_on_partial_page(self, manager, fake):
        fake.on('GET', PROJECT_PATH + '/tests/summary',
                make_response(200, summary_body([test_case('T1')], page_size=50)))
        manager.start_project_tests(PROJECT)

        manager.get_results_by_table(PROJECT, 'Unknown')

        assert len(fake.sent('GET', PROJECT_PATH + '/tests/summary')) == 1

    def test_scan_safety_limit(self, credentials, store, fake):
        manager = TestExecutionManager(client=OpenLClient(credentials), store=store, max_scan_pages=5)
        fake.on('GET', PROJECT_PATH + '/tests/summary',
                make_response(200, {'testCases': [test_case('T1')], 'numberOfTests': 1, 'numberOfFailures': 0}))
        manager.start_project_tests(PROJECT)

        results = manager.get_results_by_table(PROJECT, 'Unknown')

        assert results.test_cases == []
        assert len(fake.sent('GET', PROJECT_PATH + '/tests/summary')) == 5

    def test_table_id_is_required(self, manager, fake):
        manager.start_project_tests(PROJECT)
        with pytest.raises(InvalidArgument, match='tableId'):
            manager.get_results_by_table(PROJECT, '')


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def __call__(self):
        return self.now

class TestWaitForSummary:

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def waiting_manager(self, credentials, store, clock):
        return TestExecutionManager(client=OpenLClient(credentials), store=store, sleep=clock.sleep, clock=clock)

    def test_no_wait_fetches_once(self, waiting_manager, fake, clock):
        fake.on('GET', PROJECT_PATH + '/tests/summary', make_response(202))
        waiting_manager.start_project_tests(PROJECT)

        summary = waiting_manager.wait_for_summary(PROJECT, wait_for_completion=False)

        assert summary['completed'] is False
        assert 'timedOut' not in summary
        assert len(fake.sent('GET', PROJECT_PATH + '/tests/summary')) == 1
        assert clock.sleeps == []

    def test_wait_until_completed(self, waiting_manager, fake, clock):
        fake.on('GET', PROJECT_PATH + '/tests/summary',
                make_response(202),
                make_response(202),
                make_response(200, summary_body([test_case('T1', 4, 1)])))
        waiting_manager.start_project_tests(PROJECT)

        summary = waiting_manager.wait_for_summary(PROJECT, wait_for_completion=True)

        assert summary['completed'] is True
        assert summary['timedOut'] is False
        assert summary['attempts'] == 3
        assert summary['numberOfPassed'] == 3
        assert clock.sleeps == [1.0, 2.0]

    def test_wait_timeout_returns_last_summary(self, waiting_manager, fake, clock):
        fake.on('GET', PROJECT_PATH + '/tests/summary', make_response(202))
        waiting_manager.start_project_tests(PROJECT)

        summary = waiting_manager.wait_for_summary(PROJECT, wait_for_completion=True, max_wait_seconds=5)

        assert summary['completed'] is False
        assert summary['timedOut'] is True
        assert clock.sleeps == [1.0, 2.0, 2.0]
        assert summary['attempts'] == 4
        assert len(fake.sent('GET', PROJECT_PATH + '/tests/summary')) == 4

    def test_backoff_is_capped(self, waiting_manager, fake, clock):
        fake.on('GET', PROJECT_PATH + '/tests/summary', make_response(202))
        waiting_manager.start_project_tests(PROJECT)

        waiting_manager.wait_for_summary(PROJECT, wait_for_completion=True, max_wait_seconds=60)

        assert max(clock.sleeps) == 10.0
        assert sum(clock.sleeps) == 60.0

    @pytest.mark.parametrize("max_wait_seconds", [0, -5, 'long', True])
    def test_invalid_max_wait(self, waiting_manager, fake, max_wait_seconds):
        fake.on('GET', PROJECT_PATH + '/tests/summary', make_response(202))
        waiting_manager.start_project_tests(PROJECT)

        with pytest.raises(InvalidArgument, match='maxWaitSeconds'):
            waiting_manager.wait_for_summary(PROJECT, wait_for_completion=True, max_wait_seconds=max_wait_seconds)
