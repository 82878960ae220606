"""Tests for the embedded store and the deployment ledger."""
import json
import threading

import pytest

from vulntarget.core.errors import AlreadyRunningError, KeyNotFoundError, StoreError
from vulntarget.core.kv_store import DiskStore
from vulntarget.core.state_store import DeploymentLedger


class TestDiskStore:
    """Bucketed key-value operations."""

    def test_put_get(self, tmp_path):
        with DiskStore(tmp_path / "kv.db", bucket="b") as store:
            store.put("k", "v1")
            store.put("k", "v2")
            assert store.get("k") == "v2"

    def test_get_missing(self, tmp_path):
        with DiskStore(tmp_path / "kv.db", bucket="b") as store:
            with pytest.raises(KeyNotFoundError):
                store.get("missing")
            assert store.get_or_none("missing") is None

    def test_put_if_absent(self, tmp_path):
        with DiskStore(tmp_path / "kv.db", bucket="b") as store:
            assert store.put_if_absent("k", "first") is True
            assert store.put_if_absent("k", "second") is False
            assert store.get("k") == "first"

    def test_buckets_are_isolated(self, tmp_path):
        path = tmp_path / "kv.db"
        with DiskStore(path, bucket="one") as one, DiskStore(path, bucket="two") as two:
            one.put("k", "1")
            assert two.get_or_none("k") is None

    def test_scan_prefix_sorted(self, tmp_path):
        with DiskStore(tmp_path / "kv.db", bucket="b") as store:
            store.put("dc:b", "2")
            store.put("dc:a", "1")
            store.put("aws:c", "3")
            assert store.scan() == [("aws:c", "3"), ("dc:a", "1"), ("dc:b", "2")]
            assert store.scan("dc:") == [("dc:a", "1"), ("dc:b", "2")]

    def test_delete(self, tmp_path):
        with DiskStore(tmp_path / "kv.db", bucket="b") as store:
            store.put("k", "v")
            assert store.delete("k") is True
            assert store.delete("k") is False

    def test_persists_across_reopen(self, tmp_path):
        path = tmp_path / "nested" / "kv.db"
        with DiskStore(path, bucket="b") as store:
            store.put("k", "v")
        with DiskStore(path, bucket="b") as store:
            assert store.get("k") == "v"


class TestDeploymentLedger:
    """Durable record of running deployments."""

    def test_add_and_exists(self, ledger):
        deployment = ledger.add_new_deployment("docker-compose", "juice-shop")
        assert deployment.key == "docker-compose:juice-shop"
        assert ledger.deployment_exists("docker-compose", "juice-shop")
        assert not ledger.deployment_exists("docker-compose", "dvwa")

    def test_stored_as_json_under_provider_template_key(self, ledger):
        ledger.add_new_deployment("docker-compose", "juice-shop")
        raw = ledger.store.get("docker-compose:juice-shop")
        data = json.loads(raw)
        assert data['template_id'] == "juice-shop"
        assert data['status'] == "running"

    def test_add_twice_raises(self, ledger):
        ledger.add_new_deployment("docker-compose", "juice-shop")
        with pytest.raises(AlreadyRunningError) as exc_info:
            ledger.add_new_deployment("docker-compose", "juice-shop")
        assert str(exc_info.value) == "juice-shop is already running on docker-compose"

    def test_remove_is_idempotent(self, ledger):
        ledger.add_new_deployment("docker-compose", "juice-shop")
        assert ledger.remove_deployment("docker-compose", "juice-shop") is True
        assert ledger.remove_deployment("docker-compose", "juice-shop") is False
        assert not ledger.deployment_exists("docker-compose", "juice-shop")

    def test_list_deployments(self, ledger):
        ledger.add_new_deployment("docker-compose", "dvwa")
        ledger.add_new_deployment("docker-compose", "juice-shop")
        assert [d.template_id for d in ledger.list_deployments()] == ["dvwa", "juice-shop"]

    def test_get_deployment_round_trips_timestamp(self, ledger):
        added = ledger.add_new_deployment("docker-compose", "juice-shop")
        loaded = ledger.get_deployment("docker-compose", "juice-shop")
        assert loaded == added

    def test_corrupt_record(self, ledger):
        ledger.store.put("docker-compose:broken", "not json")
        with pytest.raises(StoreError):
            ledger.list_deployments()

    def test_concurrent_adds_exactly_one_wins(self, vt_config):
        results = []
        errors = []
        DeploymentLedger.open(vt_config.db_path).close()

        def worker():
            ledger = DeploymentLedger.open(vt_config.db_path)
            try:
                ledger.add_new_deployment("docker-compose", "juice-shop")
                results.append(True)
            except AlreadyRunningError:
                errors.append(True)
            finally:
                ledger.close()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 1
        assert len(errors) == 4
