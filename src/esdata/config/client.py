# Copyright 2025 Emcie Co Ltd.
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

from __future__ import annotations
from dataclasses import dataclass, field
import os
from typing import Any, Mapping, Optional, Sequence

from elasticsearch import AsyncElasticsearch, Elasticsearch


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in (
        "true",
        "1",
        "yes",
    )


@dataclass(frozen=True)
class ClientConfiguration:
    """Connection settings shared by the blocking and the asynchronous client."""

    hosts: Sequence[str] = ("localhost:9200",)
    use_ssl: bool = False
    verify_certs: bool = False
    ca_certs: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    api_key: Optional[str] = None
    bearer_token: Optional[str] = None
    path_prefix: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout: float = 30
    max_retries: int = 3
    retry_on_timeout: bool = True
    http_compress: bool = True
    connections_per_node: int = 10
    index_prefix: str = ""

    @staticmethod
    def from_env() -> ClientConfiguration:
        """
        Read the client configuration from environment variables.

        Environment variables:
            ELASTICSEARCH__HOST: Elasticsearch host (default: localhost)
            ELASTICSEARCH__PORT: Elasticsearch port (default: 9200)
            ELASTICSEARCH__USERNAME: Elasticsearch username (optional)
            ELASTICSEARCH__PASSWORD: Elasticsearch password (optional)
            ELASTICSEARCH__API_KEY: API key (optional)
            ELASTICSEARCH__USE_SSL: Use SSL connection (default: false)
            ELASTICSEARCH__VERIFY_CERTS: Verify SSL certificates (default: false)
            ELASTICSEARCH__CA_CERTS: Path to a CA bundle (optional)
            ELASTICSEARCH__TIMEOUT: Request timeout in seconds (default: 30)
            ELASTICSEARCH__MAX_RETRIES: Maximum number of retries (default: 3)
            ELASTICSEARCH__RETRY_ON_TIMEOUT: Retry on timeout (default: true)
            ELASTICSEARCH__PATH_PREFIX: URL path prefix of a proxied cluster (optional)
            ELASTICSEARCH__INDEX_PREFIX: Index prefix (default: empty)
        """
        host: str = os.environ.get("ELASTICSEARCH__HOST", "localhost")
        port: int = int(os.environ.get("ELASTICSEARCH__PORT", "9200"))

        return ClientConfiguration(
            hosts=(f"{host}:{port}",),
            use_ssl=_env_flag("ELASTICSEARCH__USE_SSL", "false"),
            verify_certs=_env_flag("ELASTICSEARCH__VERIFY_CERTS", "false"),
            ca_certs=os.environ.get("ELASTICSEARCH__CA_CERTS"),
            username=os.environ.get("ELASTICSEARCH__USERNAME"),
            password=os.environ.get("ELASTICSEARCH__PASSWORD"),
            api_key=os.environ.get("ELASTICSEARCH__API_KEY"),
            path_prefix=os.environ.get("ELASTICSEARCH__PATH_PREFIX"),
            timeout=float(os.environ.get("ELASTICSEARCH__TIMEOUT", "30")),
            max_retries=int(os.environ.get("ELASTICSEARCH__MAX_RETRIES", "3")),
            retry_on_timeout=_env_flag("ELASTICSEARCH__RETRY_ON_TIMEOUT", "true"),
            index_prefix=os.environ.get("ELASTICSEARCH__INDEX_PREFIX", ""),
        )

    @property
    def urls(self) -> list[str]:
        scheme = "https" if self.use_ssl else "http"
        prefix = "/" + self.path_prefix.strip("/") if self.path_prefix else ""

        return [
            f"{host}{prefix}" if "://" in host else f"{scheme}://{host}{prefix}"
            for host in self.hosts
        ]

    def client_arguments(self) -> dict[str, Any]:
        arguments: dict[str, Any] = {
            "hosts": self.urls,
            "request_timeout": self.timeout,
            "max_retries": self.max_retries,
            "retry_on_timeout": self.retry_on_timeout,
            "http_compress": self.http_compress,
            "connections_per_node": self.connections_per_node,
        }

        if self.use_ssl or any(url.startswith("https://") for url in self.urls):
            arguments["verify_certs"] = self.verify_certs
            if self.ca_certs:
                arguments["ca_certs"] = self.ca_certs

        if self.username and self.password:
            arguments["basic_auth"] = (self.username, self.password)
        elif self.api_key:
            arguments["api_key"] = self.api_key
        elif self.bearer_token:
            arguments["bearer_auth"] = self.bearer_token

        if self.headers:
            arguments["headers"] = dict(self.headers)

        return arguments


def create_client(config: Optional[ClientConfiguration] = None) -> Elasticsearch:
    return Elasticsearch(**(config or ClientConfiguration.from_env()).client_arguments())


def create_async_client(config: Optional[ClientConfiguration] = None) -> AsyncElasticsearch:
    return AsyncElasticsearch(**(config or ClientConfiguration.from_env()).client_arguments())
