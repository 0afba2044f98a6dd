# k8s.py
"""Thin wrapper over the kubernetes ApiClient: server-side apply and GET by path.

Paths come from kinds.resolve(), so no discovery round-trip is needed and the
same code path handles core, built-in and custom resources.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from errors import ApplyConflict, ApplyRejected, TransportTransient

log = logging.getLogger(__name__)

APPLY_CONTENT_TYPE = "application/apply-patch+yaml"

# retrying later may succeed for these
_TRANSIENT_STATUSES = {408, 429}


def load_kube() -> None:
    try:
        config.load_incluster_config()
        log.info("using in-cluster config")
    except config.ConfigException:
        config.load_kube_config()
        log.info("using kubeconfig (local)")


def _server_message(exc: ApiException) -> str:
    body = getattr(exc, "body", None)
    if body:
        try:
            data = json.loads(body)
        except (TypeError, ValueError):
            return str(body).strip()
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
    return str(exc.reason or f"HTTP {exc.status}")


class ClusterClient:
    def __init__(self, api_client: Optional[client.ApiClient] = None, request_timeout: float = 30.0):
        self.api = api_client or client.ApiClient()
        self.request_timeout = request_timeout

    def _call(
        self,
        method: str,
        path: str,
        query: Optional[List[Tuple[str, str]]] = None,
        body: Optional[Dict[str, Any]] = None,
        content_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {"Accept": "application/json"}
        if content_type:
            headers["Content-Type"] = content_type
        return self.api.call_api(
            path,
            method,
            query_params=query or [],
            header_params=headers,
            body=body,
            auth_settings=["BearerToken"],
            response_type="object",
            _return_http_data_only=True,
            _request_timeout=self.request_timeout,
        )

    def apply(
        self,
        path: str,
        body: Dict[str, Any],
        field_manager: str,
        force: bool = False,
        dry_run: bool = False,
    ) -> Dict[str, Any]:
        """Server-side apply ``body`` at ``path`` as ``field_manager``."""
        query = [("fieldManager", field_manager)]
        if force:
            query.append(("force", "true"))
        if dry_run:
            query.append(("dryRun", "All"))
        try:
            return self._call("PATCH", path, query=query, body=body, content_type=APPLY_CONTENT_TYPE)
        except ApiException as e:
            msg = _server_message(e)
            if e.status == 409:
                raise ApplyConflict(msg, ref=path, cause=e) from e
            if e.status is not None and 400 <= e.status < 500 and e.status not in _TRANSIENT_STATUSES:
                raise ApplyRejected(msg, ref=path, cause=e) from e
            raise TransportTransient(msg, ref=path, cause=e, status=e.status) from e
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise TransportTransient(f"request failed: {e}", ref=path, cause=e) from e

    def get(self, path: str) -> Dict[str, Any]:
        # a 404 right after apply usually means the object is not visible yet
        try:
            obj = self._call("GET", path)
        except ApiException as e:
            raise TransportTransient(_server_message(e), ref=path, cause=e, status=e.status) from e
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise TransportTransient(f"request failed: {e}", ref=path, cause=e) from e
        # e.g. an HTML error page from a proxy in front of the apiserver
        if not isinstance(obj, dict):
            raise TransportTransient(f"unexpected {type(obj).__name__} response body", ref=path)
        return obj
