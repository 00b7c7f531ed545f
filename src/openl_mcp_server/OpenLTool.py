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

from enum import Enum
import mcp.types as types
from .Formatters import RESPONSE_FORMATS

class ToolName(str, Enum):
    START_PROJECT_TESTS       = 'start_project_tests'
    GET_TEST_RESULTS_SUMMARY  = 'get_test_results_summary'
    GET_TEST_RESULTS          = 'get_test_results'
    GET_TEST_RESULTS_BY_TABLE = 'get_test_results_by_table'

# adds a parameter into 'input_schema' (for the MCP server client (the AI agent))
def add_param(input_schema, param_name, param_type, param_desc, param_required=False, param_enum=None, param_minimum=None, param_maximum=None):
    if len(input_schema) == 0:
        input_schema |= {'type': 'object', 'properties': {}, 'required': []}
    input_schema.get('properties')[param_name] = {'type':        param_type}                              | \
                                                ({'enum':        param_enum}    if param_enum    else {}) | \
                                                ({'minimum':     param_minimum} if param_minimum is not None else {}) | \
                                                ({'maximum':     param_maximum} if param_maximum is not None else {}) | \
                                                ({'description': param_desc}    if param_desc    else {})
    if param_required == True:
        input_schema.get('required').append(param_name)


class OpenLTool:
    """
    This class encapsulates the MCP description of one of the tools published by the server.
    Attributes:
        name (ToolName): the name of the tool
        tool (types.Tool): An object describing the tool, including its name, description, and input schema.
    """
    def __init__(self, name: ToolName, title: str, description: str, input_schema: dict, read_only: bool = True):
        self.name = name
        self.tool = types.Tool(
            name=name.value,
            title=title,
            description=description,
            inputSchema=input_schema,
            annotations=types.ToolAnnotations(readOnlyHint=read_only, openWorldHint=True),
        )


def _project_param(input_schema):
    add_param(input_schema, 'projectId', 'string', "ID of the project, as returned by OpenL Studio", param_required=True)

def _pagination_params(input_schema):
    add_param(input_schema, 'page',         'integer', "Page number (0-based). Pages contain test tables, not individual tests", param_minimum=0)
    add_param(input_schema, 'size',         'integer', "Number of test tables per page", param_minimum=1, param_maximum=200)
    add_param(input_schema, 'failuresOnly', 'boolean', "Return only the test tables having failures")
    add_param(input_schema, 'failures',     'integer', "Maximum number of failed tests detailed for each test table", param_minimum=0)

def _format_param(input_schema):
    add_param(input_schema, 'response_format', 'string', "Format of the response (default: markdown)", param_enum=RESPONSE_FORMATS)

def generate_tools() -> dict[str, OpenLTool]:
    """
    Returns the description of the tools published by the server, indexed by name.
    """
    tools = {}

    input_schema = {}
    _project_param(input_schema)
    add_param(input_schema, 'tableId',    'string', "Run only the tests of this table")
    add_param(input_schema, 'testRanges', 'string', "Run only these tests, eg. '1-3,5'")
    _format_param(input_schema)
    tools[ToolName.START_PROJECT_TESTS.value] = OpenLTool(
        ToolName.START_PROJECT_TESTS,
        "Start project tests",
        "Start the execution of the tests of a project. The project is automatically opened if it is closed. "
        "The results can then be retrieved using get_test_results_summary, get_test_results or get_test_results_by_table.",
        input_schema,
        read_only=False)

    input_schema = {}
    _project_param(input_schema)
    add_param(input_schema, 'failures',          'integer', "Maximum number of failed tests detailed for each test table", param_minimum=0)
    add_param(input_schema, 'waitForCompletion', 'boolean', "Wait until the test execution completes (default: false)")
    add_param(input_schema, 'maxWaitSeconds',    'number',  "Maximum time to wait for the completion, in seconds (default: 60, max: 600)", param_minimum=1, param_maximum=600)
    _format_param(input_schema)
    tools[ToolName.GET_TEST_RESULTS_SUMMARY.value] = OpenLTool(
        ToolName.GET_TEST_RESULTS_SUMMARY,
        "Get test results summary",
        "Get the aggregated results of the last test execution (total, passed, failed, execution time) without the test cases. "
        "Use start_project_tests first to start the test execution.",
        input_schema)

    input_schema = {}
    _project_param(input_schema)
    _pagination_params(input_schema)
    _format_param(input_schema)
    tools[ToolName.GET_TEST_RESULTS.value] = OpenLTool(
        ToolName.GET_TEST_RESULTS,
        "Get test results",
        "Get the results of the last test execution, grouped by test table, with pagination. "
        "IMPORTANT: pagination applies to test tables, not to individual tests. "
        "Use start_project_tests first to start the test execution.",
        input_schema)

    input_schema = {}
    _project_param(input_schema)
    add_param(input_schema, 'tableId', 'string', "ID of the test table", param_required=True)
    _pagination_params(input_schema)
    _format_param(input_schema)
    tools[ToolName.GET_TEST_RESULTS_BY_TABLE.value] = OpenLTool(
        ToolName.GET_TEST_RESULTS_BY_TABLE,
        "Get test results by table",
        "Get the results of the last test execution for one test table. "
        "Pages are scanned starting from 'page' until the table is found. "
        "Use start_project_tests first to start the test execution.",
        input_schema)

    return tools
