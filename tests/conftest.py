"""
Pytest configuration and fixtures for APS Viewer Backend tests.

The remote APS API is replaced by FakeAps, an in-memory stand-in served
through ``httpx.MockTransport``, so no test touches the network.
"""

import json
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, unquote

import httpx
import pytest
from fastapi.testclient import TestClient

from aps_viewer_backend.configuration import Settings
from aps_viewer_backend.main import create_app

APS_BASE_URL = "https://developer.api.autodesk.com"
S3_BASE_URL = "https://s3.example.com"


class FakeAps:
    """In-memory APS: OAuth, OSS buckets/objects and Model Derivative manifests."""

    def __init__(self):
        self.buckets: set = set()
        self.objects: Dict[str, List[Dict[str, Any]]] = {}
        self.manifests: Dict[str, Dict[str, Any]] = {}
        self.jobs: List[Dict[str, Any]] = []
        self.token_scopes: List[str] = []
        self.uploaded_parts: Dict[str, bytes] = {}
        self.calls: List[tuple] = []
        # Forced statuses, e.g. {"details": 403} or {"manifest": 500}
        self.failures: Dict[str, int] = {}
        self.raise_on: Optional[str] = None
        self._token_counter = 0

    # helpers used by tests

    def add_objects(self, bucket: str, count: int, prefix: str = "model") -> None:
        items = self.objects.setdefault(bucket, [])
        for _ in range(count):
            key = f"{prefix}-{len(items):04d}.rvt"
            items.append(self._object_details(bucket, key))

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)

    @staticmethod
    def _object_details(bucket: str, key: str, size: int = 0) -> Dict[str, Any]:
        return {
            "bucketKey": bucket,
            "objectKey": key,
            "objectId": f"urn:adsk.objects:os.object:{bucket}/{key}",
            "sha1": "0" * 40,
            "size": size,
            "location": f"{APS_BASE_URL}/oss/v2/buckets/{bucket}/objects/{key}",
        }

    def _fail(self, kind: str) -> Optional[httpx.Response]:
        if self.raise_on == kind:
            raise httpx.ConnectError("connection refused")
        status = self.failures.get(kind)
        if status:
            return httpx.Response(status, json={"reason": f"forced {kind} failure"})
        return None

    # transport

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        raw_path = request.url.raw_path.decode("ascii").split("?")[0]
        parts = [unquote(part) for part in raw_path.strip("/").split("/")]
        method = request.method

        if request.url.host == "s3.example.com":
            self.calls.append(("put_part", path))
            failure = self._fail("put_part")
            if failure is not None:
                return failure
            self.uploaded_parts[path] = request.content
            return httpx.Response(200)

        if path == "/authentication/v2/token":
            form = parse_qs(request.content.decode())
            self.token_scopes.append(form["scope"][0])
            self.calls.append(("token", form["scope"][0]))
            failure = self._fail("token")
            if failure is not None:
                return failure
            self._token_counter += 1
            return httpx.Response(
                200,
                json={"access_token": f"token-{self._token_counter}", "token_type": "Bearer", "expires_in": 3599},
            )

        if path == "/oss/v2/buckets" and method == "POST":
            body = json.loads(request.content)
            self.calls.append(("create_bucket", body["bucketKey"], body["policyKey"], request.headers.get("x-ads-region")))
            failure = self._fail("create_bucket")
            if failure is not None:
                return failure
            self.buckets.add(body["bucketKey"])
            return httpx.Response(200, json={"bucketKey": body["bucketKey"], "policyKey": body["policyKey"]})

        if parts[:3] == ["oss", "v2", "buckets"] and parts[-1] == "details":
            bucket = parts[3]
            self.calls.append(("details", bucket))
            failure = self._fail("details")
            if failure is not None:
                return failure
            if bucket not in self.buckets:
                return httpx.Response(404, json={"reason": "Bucket not found"})
            return httpx.Response(200, json={"bucketKey": bucket, "policyKey": "persistent"})

        if parts[:3] == ["oss", "v2", "buckets"] and parts[-1] == "objects":
            return self._list_objects(request, parts[3])

        if parts[:3] == ["oss", "v2", "buckets"] and parts[-1] == "signeds3upload":
            return self._signed_upload(request, parts[3], parts[5])

        if path == "/modelderivative/v2/designdata/job":
            payload = json.loads(request.content)
            self.calls.append(("job", payload["input"]["urn"]))
            self.jobs.append(payload)
            failure = self._fail("job")
            if failure is not None:
                return failure
            return httpx.Response(
                200,
                json={"result": "created", "urn": payload["input"]["urn"], "acceptedJobs": {"output": payload["output"]}},
            )

        if parts[:3] == ["modelderivative", "v2", "designdata"] and parts[-1] == "manifest":
            urn = parts[3]
            self.calls.append(("manifest", urn))
            failure = self._fail("manifest")
            if failure is not None:
                return failure
            if urn not in self.manifests:
                return httpx.Response(404, json={"diagnostic": "Requested resource does not exist."})
            return httpx.Response(200, json=self.manifests[urn])

        return httpx.Response(501, json={"reason": f"unexpected {method} {path}"})

    def _list_objects(self, request: httpx.Request, bucket: str) -> httpx.Response:
        self.calls.append(("objects", dict(request.url.params)))
        failure = self._fail("objects")
        if failure is not None:
            return failure
        items = self.objects.get(bucket, [])
        limit = int(request.url.params.get("limit", "10"))
        start_at = request.url.params.get("startAt")
        start = 0
        if start_at:
            start = next(i for i, item in enumerate(items) if item["objectKey"] == start_at)
        page = items[start:start + limit]
        body: Dict[str, Any] = {"items": page}
        if start + limit < len(items):
            next_key = items[start + limit]["objectKey"]
            body["next"] = f"{APS_BASE_URL}/oss/v2/buckets/{bucket}/objects?startAt={next_key}&limit={limit}"
        return httpx.Response(200, json=body)

    def _signed_upload(self, request: httpx.Request, bucket: str, key: str) -> httpx.Response:
        if request.method == "GET":
            params = request.url.params
            self.calls.append(("sign", dict(params)))
            first = int(params["firstPart"])
            count = int(params["parts"])
            urls = [f"{S3_BASE_URL}/{bucket}/{key}/part-{number}" for number in range(first, first + count)]
            return httpx.Response(200, json={"uploadKey": params.get("uploadKey", "upload-key-1"), "urls": urls})

        self.calls.append(("complete", key))
        failure = self._fail("complete")
        if failure is not None:
            return failure
        size = sum(len(content) for content in self.uploaded_parts.values())
        details = self._object_details(bucket, key, size)
        self.objects.setdefault(bucket, []).append(details)
        return httpx.Response(200, json=details)


@pytest.fixture
def fake_aps():
    return FakeAps()


@pytest.fixture
def settings(tmp_path):
    static_dir = tmp_path / "wwwroot"
    static_dir.mkdir()
    (static_dir / "index.html").write_text("<html><body>viewer</body></html>")
    return Settings(
        client_id="Test-Client",
        client_secret="test-secret",
        bucket="test-client-basic-app",
        base_url=APS_BASE_URL,
        static_dir=str(static_dir),
        upload_dir=str(tmp_path / "uploads"),
    )


@pytest.fixture
def client(settings, fake_aps):
    """Create a test client for the FastAPI app backed by FakeAps."""
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_aps.handler), base_url=APS_BASE_URL)
    return TestClient(create_app(settings, http_client=http))
