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

import requests
from requests.adapters import HTTPAdapter
import ssl
import base64
import logging
from validator_collection import checkers

DEFAULT_TIMEOUT = 30    # seconds
MAX_TIMEOUT     = 600   # seconds

class CustomHTTPAdapter(HTTPAdapter):
    """
    A class that modifies the default behaviour with regards to certificates in order to
        - accept self-signed certificates
        - skip hostname verification
    """
    def __init__(self, certfile=None):
         self.certfile = certfile
         HTTPAdapter.__init__(self)

    def init_poolmanager(self, *args, **kwargs):
        context = ssl.create_default_context(cafile = self.certfile)
        context.verify_flags = ssl.VERIFY_ALLOW_PROXY_CERTS | ssl.VERIFY_X509_TRUSTED_FIRST | ssl.VERIFY_X509_PARTIAL_CHAIN
        kwargs['ssl_context'] = context
        kwargs['assert_hostname'] = False
        return super().init_poolmanager(*args, **kwargs)

def validate_timeout(timeout) -> float:
    """
    Returns the timeout (in seconds) to use for every HTTP call.
    Invalid values fall back to the default, large values are capped.
    """
    try:
        timeout = float(timeout)
    except (TypeError, ValueError):
        return DEFAULT_TIMEOUT
    if timeout != timeout or timeout <= 0:     # NaN or not positive
        return DEFAULT_TIMEOUT
    return min(timeout, MAX_TIMEOUT)

class Credentials:

    def __init__(self, openl_url,
                 username=None, password=None,
                 personal_access_token=None,
                 token_url=None, scope='openid', client_id=None, client_secret=None,
                 client_document_id=None,
                 verify_ssl=True, ssl_cert_path=None,
                 timeout=DEFAULT_TIMEOUT):

        self.logger = logging.getLogger("openl_mcp_server.Credentials")

        # remove the ending / and check the URL of the OpenL Studio REST API
        if not openl_url:
            raise ValueError("Please set the URL of the OpenL Studio REST API")
        self.openl_url = openl_url.strip().rstrip('/')
        if not checkers.is_url(self.openl_url, allow_special_ips=True):
            raise ValueError("'"+self.openl_url+"' is not a valid URL")

        if verify_ssl:
            import certifi
            self.cacert = certifi.where()
        else:
            self.cacert = None

        self.username = username
        self.password = password
        self.personal_access_token = personal_access_token
        self.token_url = token_url
        self.scope = scope
        self.client_id = client_id
        self.client_secret = client_secret
        self.client_document_id = client_document_id
        self.verify_ssl = verify_ssl
        self.ssl_cert_path = ssl_cert_path
        self.timeout = validate_timeout(timeout)

        if personal_access_token and not personal_access_token.startswith('openl_pat_'):
            self.logger.warning("The personal access token does not start with 'openl_pat_'")

    def get_auth_method(self) -> str:
        if self.personal_access_token:
            return "Personal Access Token"
        elif self.client_id or self.client_secret:
            return "OAuth2 Client Credentials"
        elif self.username and self.password:
            return "Basic Auth"
        elif self.username or self.password:
            return "Incomplete Basic Auth"
        return "No Auth"

    def get_auth(self):
        if self.personal_access_token:
            return {
                'Authorization': f'Token {self.personal_access_token}'
            }
        elif self.client_id or self.client_secret:
            if not self.client_id or not self.client_secret or not self.token_url:
                raise ValueError("'client_id', 'client_secret' and 'token_url' are required for OAuth2 authentication.")

            data = {
                'grant_type': 'client_credentials',
                'scope': self.scope,
            }
            auth = requests.auth.HTTPBasicAuth(self.client_id, self.client_secret)
            response = requests.post(self.token_url, data=data, auth=auth,
                                     verify=self.cacert if self.verify_ssl else False,
                                     timeout=self.timeout)
            response.raise_for_status() # raise an HTTPError if the request failed
            access_token = response.json()['access_token']
            return {
                'Authorization': f'Bearer {access_token}'
            }
        elif self.username and self.password:
            concatenated_key = f"{self.username}:{self.password}"
            encoded_user_cred = base64.b64encode(concatenated_key.encode()).decode()
            return {
                'Authorization': f'Basic {encoded_user_cred}'
            }
        else:
            raise ValueError("Either username and password, a personal access token, or an OAuth2 client must be provided.")

    def get_session(self):
        """
        Creates and returns a requests Session object configured with SSL settings and authentication headers
        """
        session = requests.Session()

        if self.openl_url.startswith('https') and self.verify_ssl:
            session.verify = True
            session.mount('https://', CustomHTTPAdapter(certfile = self.ssl_cert_path))
        else:
            session.verify = False
            import urllib3
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        session.headers.update(self.get_auth())
        if self.client_document_id:
            session.headers.update({'Client-Document-Id': self.client_document_id})

        self.logger.debug(f"Session created with URL: {self.openl_url} using {self.get_auth_method()}")
        return session
