import json, os, time
from typing import List, Optional
from google.cloud import storage
from google.api_core.exceptions import NotFound, TooManyRequests
from google.api_core.retry import Retry, if_transient_error

TRANSIENT_RETRY = Retry(
    predicate=if_transient_error,
    initial=0.5, maximum=8.0, multiplier=2.0, deadline=30.0
)


def _dumps(obj) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), allow_nan=False, default=str)


class GcsStore:
    """JSON snapshot archive in a Cloud Storage bucket."""

    def __init__(self, bucket_name: str, client: Optional[storage.Client] = None):
        self.client = client or storage.Client()
        self.bucket = self.client.bucket(bucket_name)

    def read_text(self, path: str) -> Optional[str]:
        blob = self.bucket.blob(path)
        try:
            return blob.download_as_text(retry=TRANSIENT_RETRY)
        except NotFound:
            return None

    def write_text(self, path, text, content_type="text/plain"):
        blob = self.bucket.blob(path)
        # 429s are not covered by the transient predicate on every lib version
        backoff = 0.5
        for attempt in range(6):
            try:
                blob.upload_from_string(text, content_type=content_type, retry=TRANSIENT_RETRY, timeout=60)
                return
            except TooManyRequests:
                if attempt == 5:
                    raise
                time.sleep(backoff)
                backoff = min(backoff * 2, 8.0)

    def read_json(self, path: str):
        t = self.read_text(path)
        return None if t is None else json.loads(t)

    def write_json(self, path, obj):
        self.write_text(path, _dumps(obj), "application/json")

    def delete(self, path: str) -> bool:
        try:
            self.bucket.blob(path).delete(retry=TRANSIENT_RETRY)
            return True
        except NotFound:
            return False

    def list_paths(self, prefix: str) -> List[str]:
        return [b.name for b in self.client.list_blobs(self.bucket, prefix=prefix)]


class LocalStore:
    """Same interface as GcsStore, backed by a directory. Used in dev and tests."""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)
        os.makedirs(self.root, exist_ok=True)

    def _full(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, path))
        if not full.startswith(self.root + os.sep):
            raise ValueError(f"Path escapes store root: {path!r}")
        return full

    def read_text(self, path: str) -> Optional[str]:
        full = self._full(path)
        if not os.path.exists(full):
            return None
        with open(full, encoding="utf-8") as fh:
            return fh.read()

    def write_text(self, path, text, content_type="text/plain"):
        full = self._full(path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "w", encoding="utf-8") as fh:
            fh.write(text)

    def read_json(self, path: str):
        t = self.read_text(path)
        return None if t is None else json.loads(t)

    def write_json(self, path, obj):
        self.write_text(path, _dumps(obj), "application/json")

    def delete(self, path: str) -> bool:
        full = self._full(path)
        if not os.path.exists(full):
            return False
        os.remove(full)
        return True

    def list_paths(self, prefix: str) -> List[str]:
        out = []
        for dirpath, _, files in os.walk(self.root):
            for name in files:
                rel = os.path.relpath(os.path.join(dirpath, name), self.root).replace(os.sep, "/")
                if rel.startswith(prefix):
                    out.append(rel)
        return sorted(out)
