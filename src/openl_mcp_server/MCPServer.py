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

from typing import Optional
import mcp.types as types
from mcp.server.fastmcp import FastMCP
import asyncio
import logging
import argparse
import os
import sys

from .Credentials import Credentials, DEFAULT_TIMEOUT
from .OpenLClient import OpenLClient
from .OpenLTool import OpenLTool, ToolName, generate_tools
from .TestSessionStore import TestSessionStore, SessionHeaderPolicy, DEFAULT_CORRELATION_HEADER
from .TestExecutionManager import TestExecutionManager
from .Errors import OpenLError
from .Formatters import validate_response_format, format_start, format_summary, format_results, format_table_results

INSTRUCTIONS = """
OpenL Studio MCP server
This server runs the tests of OpenL Studio projects and retrieves their results.
Start a test execution with start_project_tests, then retrieve the results with
get_test_results_summary, get_test_results or get_test_results_by_table.
"""

class MCPServer:

    def __init__(self, credentials: Credentials,
                 session_policy: Optional[SessionHeaderPolicy] = None,
                 transport: Optional[str] = 'stdio', host: Optional[str] = '0.0.0.0', port: Optional[int] = 3000, path: Optional[str] = '/mcp'):
        # Get logger for this class
        self.logger = logging.getLogger(__name__)
        self.credentials = credentials
        self.transport = transport
        self.host      = host
        self.port      = port
        self.path      = path
        self.repository: dict[str, OpenLTool] = generate_tools()
        self.store   = TestSessionStore(policy=session_policy)
        self.manager = TestExecutionManager(client=OpenLClient(credentials), store=self.store)

    async def list_tools(self) -> list[types.Tool]:
        """
        List available tools.
        Each tool specifies its arguments using JSON Schema validation.
        """
        return [endpoint.tool for endpoint in self.repository.values()]

    async def call_tool(self,
        name: str, arguments: dict | None
    ) -> list[types.TextContent]:
        """
        Handle tool execution requests.
        """
        self.logger.info("Invoking tool: %s with arguments: %s", name, arguments)

        if name not in self.repository:
            raise ValueError(f"Unknown tool: {name}")

        # the HTTP calls (and the waits between polls) are blocking: keep them off the event loop
        # this call may throw an exception, handled by Server.call_tool.handler
        try:
            response_text = await asyncio.to_thread(self.invoke, ToolName(name), arguments or {})
        except OpenLError as e:
            self.logger.error("Tool %s failed: %s", name, e)
            raise

        return [
            types.TextContent(
                type="text",
                text=response_text,
            )
        ]

    def invoke(self, tool_name: ToolName, arguments: dict) -> str:
        response_format = validate_response_format(arguments.get('response_format'))

        if tool_name == ToolName.START_PROJECT_TESTS:
            result = self.manager.start_project_tests(arguments.get('projectId'),
                                                      table_id    = arguments.get('tableId'),
                                                      test_ranges = arguments.get('testRanges'))
            return format_start(result, response_format)

        elif tool_name == ToolName.GET_TEST_RESULTS_SUMMARY:
            summary = self.manager.wait_for_summary(arguments.get('projectId'),
                                                    wait_for_completion = arguments.get('waitForCompletion', False),
                                                    max_wait_seconds    = arguments.get('maxWaitSeconds'),
                                                    failures            = arguments.get('failures'))
            return format_summary(summary, response_format)

        elif tool_name == ToolName.GET_TEST_RESULTS:
            results = self.manager.get_results(arguments.get('projectId'),
                                               page          = arguments.get('page'),
                                               size          = arguments.get('size'),
                                               failures_only = arguments.get('failuresOnly'),
                                               failures      = arguments.get('failures'))
            return format_results(arguments.get('projectId').strip(), results, response_format)

        elif tool_name == ToolName.GET_TEST_RESULTS_BY_TABLE:
            results = self.manager.get_results_by_table(arguments.get('projectId'), arguments.get('tableId'),
                                                        page          = arguments.get('page'),
                                                        size          = arguments.get('size'),
                                                        failures_only = arguments.get('failuresOnly'),
                                                        failures      = arguments.get('failures'))
            return format_table_results(arguments.get('projectId').strip(), arguments.get('tableId').strip(), results, response_format)

        raise ValueError(f"Unknown tool: {tool_name}")

    def start(self):
        self.server = FastMCP(name="openl-mcp-server",
                              instructions=INSTRUCTIONS,
                              host=self.host,
                              port=self.port,
                              sse_path=self.path,
                              streamable_http_path=self.path,
                             )
        # Register handlers
        self.server._mcp_server.list_tools()(self.list_tools)
        self.server._mcp_server.call_tool()(self.call_tool)

        self.server.run(transport=self.transport)

def init_logging(level_name):
    level=getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    logging.info(f"Running Python {sys.version_info}. Logging level set to: {logging.getLevelName(level)}")

def create_credentials(args):
    verifyssl = args.verifyssl != "False"

    if args.personal_access_token:  # Personal Access Token provided
        return Credentials(
            openl_url=args.url,
            personal_access_token=args.personal_access_token,
            client_document_id=args.client_document_id,
            ssl_cert_path=args.ssl_cert_path,
            verify_ssl=verifyssl,
            timeout=args.timeout,
        )
    elif args.client_secret:  # OAuth2 Client Secret provided
        return Credentials(
            openl_url=args.url,
            token_url=args.token_url,
            scope=args.scope,
            client_id=args.client_id,
            client_secret=args.client_secret,
            client_document_id=args.client_document_id,
            ssl_cert_path=args.ssl_cert_path,
            verify_ssl=verifyssl,
            timeout=args.timeout,
        )
    else:  # Default to basic authentication
        if not args.username or not args.password:
            raise ValueError("Username and password must be provided for basic authentication.")
        return Credentials(
            openl_url=args.url,
            username=args.username,
            password=args.password,
            client_document_id=args.client_document_id,
            ssl_cert_path=args.ssl_cert_path,
            verify_ssl=verifyssl,
            timeout=args.timeout,
        )

def create_session_policy(args):
    return SessionHeaderPolicy(correlation_header=args.correlation_header,
                               extra_headers=args.session_headers or [])

def init(args):
    init_logging(args.log_level)
    credentials = create_credentials(args)
    server = MCPServer(
        credentials=credentials,
        session_policy=create_session_policy(args),
        transport=args.transport, host=args.host, port=args.port, path=args.mount_path,
    )
    return server

def env_list(name):
    value = os.getenv(name)
    return [item.strip() for item in value.split(',') if item.strip()] if value else None

def parse_arguments():
    parser = argparse.ArgumentParser(description="OpenL Studio MCP Server")
    parser.add_argument("--url",               type=str, default=os.getenv("OPENL_BASE_URL"), help="OpenL Studio REST API URL (eg. http://localhost:8080/rest)")
    parser.add_argument("--username",          type=str, default=os.getenv("OPENL_USERNAME"), help="OpenL Studio username (optional)")
    parser.add_argument("--password",          type=str, default=os.getenv("OPENL_PASSWORD"), help="OpenL Studio password (optional)")
    parser.add_argument("--personal-access-token", type=str, default=os.getenv("OPENL_PERSONAL_ACCESS_TOKEN"), help="OpenL Studio Personal Access Token, eg. openl_pat_... (optional)")
    parser.add_argument("--client-id",         type=str, default=os.getenv("CLIENT_ID"), help="OAuth2 Client ID (optional)")
    parser.add_argument("--client-secret",     type=str, default=os.getenv("CLIENT_SECRET"), help="OAuth2 Client Secret (optional)")
    parser.add_argument("--token-url",         type=str, default=os.getenv("TOKEN_URL"), help="OAuth2 token endpoint URL (optional)")
    parser.add_argument("--scope",             type=str, default=os.getenv("SCOPE", "openid"), help="Scope used when requesting an access token using Client Credentials (optional)")
    parser.add_argument("--client-document-id",type=str, default=os.getenv("OPENL_CLIENT_DOCUMENT_ID"), help="Value of the Client-Document-Id header sent with every request, for audit and debugging (optional)")
    parser.add_argument("--verifyssl",         type=str, default=os.getenv("VERIFY_SSL", "True"), choices=["True", "False"], help="Disable SSL check. Default is True (SSL verification enabled).")
    parser.add_argument("--ssl-cert-path",     type=str, default=os.getenv("SSL_CERT_PATH"), help="Path to the SSL certificate file. If not provided, defaults to system certificates.")
    parser.add_argument("--timeout",           type=float, default=os.getenv("OPENL_TIMEOUT", DEFAULT_TIMEOUT), help="Timeout of the HTTP requests sent to OpenL Studio, in seconds (default: 30, max: 600)")

    # test execution session
    parser.add_argument("--correlation-header",type=str, default=os.getenv("OPENL_CORRELATION_HEADER", DEFAULT_CORRELATION_HEADER), help="Header of the test start response identifying the test execution.")
    parser.add_argument("--session-headers",   type=str, default=env_list("OPENL_SESSION_HEADERS"), nargs='+', help="Other headers of the test start response to send again when retrieving the test results.")

    # arguments useful when running the MCP server in remote mode
    parser.add_argument("--transport",         type=str, default=os.getenv("TRANSPORT", "stdio"), choices=["stdio", "streamable-http", "sse"], help="Means of communication of the MCP server: local (stdio) or remote.")
    parser.add_argument("--host",              type=str, default=os.getenv("HOST", "0.0.0.0"), help="IP or hostname that the MCP server listens to in remote mode.")
    parser.add_argument("--port",              type=int, default=os.getenv("PORT", 3000), help="Port that the MCP server listens to in remote mode.")
    parser.add_argument("--mount-path",        type=str, default=os.getenv("MOUNT_PATH", "/mcp"), help="Path that the MCP server listens to in remote mode.")

    # Logging-related arguments
    parser.add_argument("--log-level",         type=str, default=os.getenv("LOG_LEVEL", "INFO"),
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Set the logging level (default: INFO)")

    return parser.parse_args()

def main():
    args = parse_arguments()
    server = init(args)
    server.start()
