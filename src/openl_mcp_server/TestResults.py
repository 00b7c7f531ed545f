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

logger = logging.getLogger(__name__)

def _int(value, default=0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default

def _clamp_failures(number_of_tests: int, number_of_failures: int, what: str) -> int:
    if number_of_failures > number_of_tests:
        logger.warning("%s reports %d failures for %d tests, keeping %d", what, number_of_failures, number_of_tests, number_of_tests)
        return number_of_tests
    return max(number_of_failures, 0)


class TestCaseSummary:
    """
    Results of the tests of one test table.
    """
    __test__ = False

    def __init__(self, name: str, table_id: str, execution_time_ms: float = 0,
                 number_of_tests: int = 0, number_of_failures: int = 0, test_units: list | None = None):
        self.name               = name
        self.table_id           = table_id
        self.execution_time_ms  = execution_time_ms
        self.number_of_tests    = number_of_tests
        self.number_of_failures = _clamp_failures(number_of_tests, number_of_failures, f"Test table '{table_id}'")
        self.test_units         = test_units or []

    @property
    def number_of_passed(self) -> int:
        return self.number_of_tests - self.number_of_failures

    @classmethod
    def from_json(cls, data: dict) -> 'TestCaseSummary':
        return cls(name               = data.get('name'),
                   table_id           = data.get('tableId'),
                   execution_time_ms  = data.get('executionTimeMs') or 0,
                   number_of_tests    = _int(data.get('numberOfTests')),
                   number_of_failures = _int(data.get('numberOfFailures')),
                   test_units         = data.get('testUnits') or [])

    def to_dict(self) -> dict:
        return {'name':             self.name,
                'tableId':          self.table_id,
                'executionTimeMs':  self.execution_time_ms,
                'numberOfTests':    self.number_of_tests,
                'numberOfFailures': self.number_of_failures,
                'numberOfPassed':   self.number_of_passed,
                'testUnits':        self.test_units}


class ExecutionSummary:
    """
    One page of the results of a test execution, as returned by GET /projects/{projectId}/tests/summary

    The pagination attributes (page_number, page_size, number_of_elements, total_pages) count test tables,
    not individual tests: one test table usually bundles several tests.
    """

    def __init__(self, test_cases: list[TestCaseSummary] | None = None, execution_time_ms: float = 0,
                 number_of_tests: int = 0, number_of_failures: int = 0,
                 page_number: int = 0, page_size: int = 0, number_of_elements: int | None = None,
                 total_pages: int | None = None, completed: bool = True):
        self.test_cases         = test_cases or []
        self.execution_time_ms  = execution_time_ms
        self.number_of_tests    = number_of_tests
        self.number_of_failures = _clamp_failures(number_of_tests, number_of_failures, "Test execution summary")
        self.page_number        = page_number
        self.page_size          = page_size
        self.number_of_elements = number_of_elements if number_of_elements is not None else len(self.test_cases)
        self.total_pages        = total_pages
        self.completed          = completed

    @property
    def number_of_passed(self) -> int:
        return self.number_of_tests - self.number_of_failures

    @property
    def offset(self) -> int:
        """Index of the first test table of this page (0-based)."""
        return self.page_number * self.page_size

    @property
    def has_more(self) -> bool:
        if self.total_pages is not None:
            return self.page_number < self.total_pages - 1
        return self.page_size > 0 and self.number_of_elements >= self.page_size

    @classmethod
    def from_json(cls, data, completed: bool = True) -> 'ExecutionSummary':
        data = data if isinstance(data, dict) else {}
        total_pages = data.get('totalPages')
        return cls(test_cases         = [TestCaseSummary.from_json(tc) for tc in data.get('testCases') or []],
                   execution_time_ms  = data.get('executionTimeMs') or 0,
                   number_of_tests    = _int(data.get('numberOfTests')),
                   number_of_failures = _int(data.get('numberOfFailures')),
                   page_number        = _int(data.get('pageNumber')),
                   page_size          = _int(data.get('pageSize')),
                   number_of_elements = _int(data.get('numberOfElements'), None),
                   total_pages        = _int(total_pages, None),
                   completed          = completed)

    def filtered(self, table_id: str) -> 'ExecutionSummary':
        """Returns a copy of this page restricted to the test cases of one table, with recomputed counts."""
        test_cases = [tc for tc in self.test_cases if tc.table_id == table_id]
        return ExecutionSummary(test_cases         = test_cases,
                                execution_time_ms  = sum(tc.execution_time_ms for tc in test_cases),
                                number_of_tests    = sum(tc.number_of_tests for tc in test_cases),
                                number_of_failures = sum(tc.number_of_failures for tc in test_cases),
                                page_number        = self.page_number,
                                page_size          = self.page_size,
                                number_of_elements = len(test_cases),
                                total_pages        = self.total_pages,
                                completed          = self.completed)

    def totals(self) -> dict:
        return {'executionTimeMs':  self.execution_time_ms,
                'numberOfTests':    self.number_of_tests,
                'numberOfFailures': self.number_of_failures,
                'numberOfPassed':   self.number_of_passed,
                'completed':        self.completed}

    def to_dict(self) -> dict:
        return self.totals() | \
               {'testCases':        [tc.to_dict() for tc in self.test_cases],
                'pageNumber':       self.page_number,
                'pageSize':         self.page_size,
                'numberOfElements': self.number_of_elements} | \
               ({'totalPages':      self.total_pages} if self.total_pages is not None else {})
