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

import json
from .TestResults import ExecutionSummary
from .Errors import InvalidArgument

RESPONSE_FORMATS = ['markdown', 'json']

def validate_response_format(response_format) -> str:
    if response_format is None:
        return 'markdown'
    if response_format not in RESPONSE_FORMATS:
        raise InvalidArgument(f"response_format must be one of: {', '.join(RESPONSE_FORMATS)}. Got '{response_format}'.")
    return response_format

def to_json(data) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)

def pagination_info(summary: ExecutionSummary) -> dict:
    """Position of the page among the test tables of the execution."""
    return {'offset':   summary.offset,
            'limit':    summary.page_size,
            'from':     summary.offset + 1 if summary.number_of_elements > 0 else summary.offset,
            'to':       summary.offset + summary.number_of_elements,
            'has_more': summary.has_more} | \
           ({'next_page': summary.page_number + 1} if summary.has_more else {})


def format_start(result: dict, response_format: str) -> str:
    if response_format == 'json':
        return to_json(result)

    lines = [f"## {result['message']}",
             "",
             f"- **Project**: {result['projectId']}"]
    if result.get('tableId'):
        lines.append(f"- **Table**: {result['tableId']}")
    if result.get('testRanges'):
        lines.append(f"- **Test ranges**: {result['testRanges']}")
    if result.get('executionId'):
        lines.append(f"- **Execution ID**: {result['executionId']}")
    lines.append(f"- **Project automatically opened**: {'yes' if result['projectWasOpened'] else 'no'}")
    lines += ["",
              "Use get_test_results_summary, get_test_results or get_test_results_by_table to retrieve the results."]
    return '\n'.join(lines)


def format_summary(summary: dict, response_format: str) -> str:
    if response_format == 'json':
        return to_json(summary)

    if summary.get('timedOut'):
        status = 'still running (timed out while waiting)'
    else:
        status = 'completed' if summary['completed'] else 'running'

    lines = [f"## Test results summary: {summary['projectId']}",
             "",
             f"- **Status**: {status}",
             f"- **Total tests**: {summary['numberOfTests']}",
             f"- **Passed**: {summary['numberOfPassed']}",
             f"- **Failed**: {summary['numberOfFailures']}",
             f"- **Execution time**: {summary['executionTimeMs']} ms"]
    if 'attempts' in summary:
        lines.append(f"- **Polls**: {summary['attempts']}")
    return '\n'.join(lines)


def _test_case_lines(summary: ExecutionSummary) -> list[str]:
    lines = ["| Table | Name | Tests | Passed | Failed | Time (ms) |",
             "|---|---|---|---|---|---|"]
    for tc in summary.test_cases:
        lines.append(f"| {tc.table_id} | {tc.name} | {tc.number_of_tests} | {tc.number_of_passed} | {tc.number_of_failures} | {tc.execution_time_ms} |")
    return lines


def format_results(project_id: str, summary: ExecutionSummary, response_format: str) -> str:
    pagination = pagination_info(summary)
    if response_format == 'json':
        return to_json({'projectId': project_id} | summary.to_dict() | {'pagination': pagination})

    lines = [f"## Test results: {project_id}",
             "",
             f"**{summary.number_of_passed} passed, {summary.number_of_failures} failed, {summary.number_of_tests} total**"
             + ("" if summary.completed else " (execution still running)"),
             ""]
    if summary.test_cases:
        lines += _test_case_lines(summary)
        lines += ["",
                  f"Showing test tables {pagination['from']}-{pagination['to']}"
                  + (f" of {summary.total_pages} page(s)" if summary.total_pages is not None else "")
                  + (f". More results available: use page={pagination['next_page']}." if summary.has_more else ".")]
    else:
        lines.append("No test results.")
    return '\n'.join(lines)


def format_table_results(project_id: str, table_id: str, summary: ExecutionSummary, response_format: str) -> str:
    if response_format == 'json':
        return to_json({'projectId': project_id, 'tableId': table_id} | summary.to_dict())

    if not summary.test_cases:
        return f"No test results found for table '{table_id}' in project '{project_id}'."

    lines = [f"## Test results of table {table_id}: {project_id}",
             "",
             f"**{summary.number_of_passed} passed, {summary.number_of_failures} failed, {summary.number_of_tests} total**",
             ""]
    lines += _test_case_lines(summary)
    for tc in summary.test_cases:
        if tc.test_units:
            lines += ["", f"### {tc.name}", "", "```json", to_json(tc.test_units), "```"]
    return '\n'.join(lines)
