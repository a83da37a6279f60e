from pathlib import Path
import sys
from unittest.mock import Mock

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from minio.error import S3Error
from redis.exceptions import WatchError

from asyncops.services.functions import FunctionRegistry
from asyncops.services.runner import OperationRunner
from asyncops.storage.payloads import PayloadStore
from asyncops.storage.repo import OperationRepo


class InMemoryPipeline:
    """WATCH/MULTI/EXEC over InMemoryRedis, mirroring redis.client.Pipeline."""

    def __init__(self, store):
        self.store = store
        self.watched = {}
        self.queued = None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.reset()

    def reset(self):
        self.watched = {}
        self.queued = None

    def watch(self, *keys):
        for key in keys:
            self.watched[key] = self.store.versions.get(key, 0)

    def hgetall(self, key):
        return self.store.hgetall(key)

    def multi(self):
        self.queued = []

    def hset(self, key, field=None, value=None, mapping=None):
        self.queued.append((key, field, value, mapping))

    def execute(self):
        for key, version in self.watched.items():
            if self.store.versions.get(key, 0) != version:
                self.reset()
                raise WatchError("Watched variable changed.")
        if self.store.fail_next_execute is not None:
            exc, self.store.fail_next_execute = self.store.fail_next_execute, None
            self.reset()
            raise exc
        results = [self.store.hset(key, field, value, mapping) for key, field, value, mapping in self.queued]
        self.reset()
        return results


class InMemoryRedis:
    """The subset of redis.Redis (decode_responses=True) used by OperationRepo."""

    def __init__(self):
        self.hashes = {}
        self.versions = {}
        self.fail_next_execute = None

    def _touch(self, key):
        self.versions[key] = self.versions.get(key, 0) + 1

    def pipeline(self):
        return InMemoryPipeline(self)

    def hsetnx(self, key, field, value):
        h = self.hashes.setdefault(key, {})
        if field in h:
            return 0
        h[field] = str(value)
        self._touch(key)
        return 1

    def hset(self, key, field=None, value=None, mapping=None):
        h = self.hashes.setdefault(key, {})
        items = dict(mapping or {})
        if field is not None:
            items[field] = value
        for k, v in items.items():
            h[k] = str(v)
        self._touch(key)
        return len(items)

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def delete(self, *keys):
        removed = 0
        for k in keys:
            if self.hashes.pop(k, None) is not None:
                self._touch(k)
                removed += 1
        return removed


class InMemoryMinio:
    """Dict-backed stand-in for the minio.Minio calls PayloadStore makes."""

    def __init__(self):
        self.objects = {}

    def put_object(self, bucket, key, data, length, content_type=None):
        self.objects[(bucket, key)] = data.read(length)

    def get_object(self, bucket, key):
        if (bucket, key) not in self.objects:
            raise S3Error(
                code="NoSuchKey",
                message="The specified key does not exist.",
                resource=f"/{bucket}/{key}",
                request_id="test",
                host_id="test",
                response=Mock(status=404),
            )
        response = Mock()
        response.read.return_value = self.objects[(bucket, key)]
        return response


@pytest.fixture
def redis_client():
    return InMemoryRedis()


@pytest.fixture
def repo(redis_client):
    return OperationRepo(namespace="test-operations", client=redis_client)


@pytest.fixture
def minio_client():
    return InMemoryMinio()


@pytest.fixture
def payloads(minio_client):
    return PayloadStore(client=minio_client, bucket="test-bucket", prefix="payloads")


@pytest.fixture
def functions():
    reg = FunctionRegistry()

    @reg.register("echo")
    def echo(payload):
        return payload

    @reg.register("fail")
    def fail(payload):
        raise RuntimeError("triggered failure")

    return reg


@pytest.fixture
def runner(repo, payloads, functions):
    return OperationRunner(repo, payloads, functions)
