"""Tests for ServerHandle release semantics and the implementation dispatch tables."""

import logging

import pytest

from crossbench.benchmarks import lifecycle
from crossbench.benchmarks.config import Impl
from crossbench.benchmarks.lifecycle import (
    CLIENT_FACTORIES,
    SERVER_FACTORIES,
    ReleaseFailure,
    ServerHandle,
    create_client,
    start_server,
)
from crossbench.client import HttpxThroughputClient, StdlibThroughputClient
from crossbench.server import StartupFailure
from tests.fakes import CountingCloser


class TestServerHandle:
    def test_close_is_idempotent(self):
        closer = CountingCloser()
        handle = ServerHandle("127.0.0.1", 9000, closer)
        handle.close()
        handle.close()
        assert closer.calls == 1
        assert handle.closed

    def test_context_manager_releases_once(self):
        closer = CountingCloser()
        with ServerHandle("127.0.0.1", 9000, closer) as handle:
            assert handle.port == 9000
            assert not handle.closed
        handle.close()
        assert closer.calls == 1

    def test_none_closer_is_allowed(self):
        with ServerHandle("127.0.0.1", 9000, None) as handle:
            pass
        assert handle.closed

    def test_release_on_exception(self):
        closer = CountingCloser()
        with pytest.raises(RuntimeError, match="client exploded"):
            with ServerHandle("127.0.0.1", 9000, closer):
                raise RuntimeError("client exploded")
        assert closer.calls == 1

    def test_release_failure_is_raised_after_success(self):
        closer = CountingCloser(OSError("port busy"))
        with pytest.raises(ReleaseFailure) as excinfo:
            with ServerHandle("127.0.0.1", 9000, closer):
                pass
        assert isinstance(excinfo.value.__cause__, OSError)
        assert closer.calls == 1

    def test_release_failure_does_not_mask_client_error(self, caplog):
        closer = CountingCloser(OSError("port busy"))
        with caplog.at_level(logging.ERROR, logger="crossbench.benchmark.lifecycle"):
            with pytest.raises(RuntimeError, match="client exploded"):
                with ServerHandle("127.0.0.1", 9000, closer):
                    raise RuntimeError("client exploded")
        assert closer.calls == 1
        assert "Release of 127.0.0.1:9000 failed while handling RuntimeError" in caplog.text

    def test_failed_release_is_not_retried(self):
        closer = CountingCloser(OSError("port busy"))
        handle = ServerHandle("127.0.0.1", 9000, closer)
        with pytest.raises(ReleaseFailure):
            handle.close()
        handle.close()
        assert closer.calls == 1


class TestDispatchTables:
    def test_every_impl_is_registered(self):
        assert set(SERVER_FACTORIES) == set(Impl)
        assert set(CLIENT_FACTORIES) == set(Impl)

    def test_create_client_stdlib(self):
        client = create_client(Impl.STDLIB, "127.0.0.1", 8080, timeout=1.0)
        assert isinstance(client, StdlibThroughputClient)

    def test_create_client_encode_uses_base_url(self):
        client = create_client(Impl.ENCODE, "127.0.0.1", 8080)
        assert isinstance(client, HttpxThroughputClient)
        assert client._base_url == "http://127.0.0.1:8080"

    def test_unregistered_impl(self, monkeypatch):
        monkeypatch.delitem(SERVER_FACTORIES, Impl.ENCODE)
        monkeypatch.delitem(CLIENT_FACTORIES, Impl.ENCODE)
        with pytest.raises(ValueError, match="no server implementation"):
            start_server(Impl.ENCODE)
        with pytest.raises(ValueError, match="no client implementation"):
            create_client(Impl.ENCODE, "127.0.0.1", 1)


class _PortlessServer:
    def __init__(self, host):
        self.host = host
        self.port = 0
        self.stopped = 0

    def start(self, timeout):
        pass

    def stop(self):
        self.stopped += 1


class TestStartServer:
    def test_rejects_unassigned_port(self, monkeypatch):
        created = []

        def factory(host):
            server = _PortlessServer(host)
            created.append(server)
            return server

        monkeypatch.setitem(lifecycle.SERVER_FACTORIES, Impl.STDLIB, factory)
        with pytest.raises(StartupFailure, match="did not report a bound port"):
            start_server(Impl.STDLIB)
        assert created[0].stopped == 1

    @pytest.mark.parametrize("impl", list(Impl))
    def test_real_server_binds_port(self, impl):
        with start_server(impl) as handle:
            assert handle.port > 0
            assert handle.host == "127.0.0.1"
            assert handle.server is not None
        assert handle.closed
