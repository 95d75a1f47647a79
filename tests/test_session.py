"""Tests for the session lifecycle in core.session."""

import asyncio

import pytest

from documents_scripting.config import LoginData
from documents_scripting.core.session import (
    CLIENT_NAME,
    SessionManager,
    SessionState,
    check_version,
    run_session,
)
from documents_scripting.errors import (
    AuthenticationError,
    ChannelError,
    CloseError,
    ConfigurationError,
    DocumentsError,
    IncompatibleServerError,
    SessionConnectionError,
)


def _factory(channel):
    return lambda login_data: channel


async def _noop(channel, params, login_data):
    return []


class TestSuccessfulSession:
    async def test_runs_operation_and_returns_its_result(
        self, login_data, fake_channel
    ):
        async def operation(channel, params, data):
            assert channel is fake_channel
            assert data is login_data
            return [p.upper() for p in params]

        result = await run_session(
            login_data,
            ["a", "b"],
            operation,
            channel_factory=_factory(fake_channel),
        )

        assert result == ["A", "B"]

    async def test_setup_steps_run_in_order(self, login_data, fake_channel):
        await run_session(
            login_data, [], _noop, channel_factory=_factory(fake_channel)
        )

        assert [name for name, _ in fake_channel.calls] == [
            "connect",
            "handshake",
            "change_user",
            "change_principal",
            "PartnerNet.getVersionNo",
            "disconnect",
        ]
        assert fake_channel.calls[0] == (
            "connect",
            ["documents.example.com", 11000],
        )
        assert fake_channel.calls[1] == ("handshake", [CLIENT_NAME])
        assert fake_channel.calls[3] == ("change_principal", ["relations"])

    async def test_session_facts_written_back(self, fake_channel):
        login = LoginData(
            server="host", username="admin", principal="relations"
        )
        fake_channel.responses["PartnerNet.getVersionNo"] = ["8050"]

        await run_session(
            login, [], _noop, channel_factory=_factory(fake_channel)
        )

        assert login.user_id == 42
        assert login.documents_version == "8050"

    async def test_state_ends_closed(self, login_data, fake_channel):
        manager = SessionManager(
            login_data, channel_factory=_factory(fake_channel)
        )
        assert manager.state is SessionState.IDLE

        seen = []

        async def operation(channel, params, data):
            seen.append(manager.state)
            return []

        await manager.run([], operation)

        assert seen == [SessionState.READY]
        assert manager.state is SessionState.CLOSED
        assert fake_channel.disconnect_count == 1

    async def test_manager_runs_only_once(self, login_data, fake_channel):
        manager = SessionManager(
            login_data, channel_factory=_factory(fake_channel)
        )
        await manager.run([], _noop)

        with pytest.raises(RuntimeError):
            await manager.run([], _noop)

    async def test_password_transform_applied(self, login_data, fake_channel):
        await run_session(
            login_data,
            [],
            _noop,
            channel_factory=_factory(fake_channel),
            password_transform=lambda pw: f"hashed:{pw}",
        )

        assert ("change_user", ["admin", "hashed:secret"]) in fake_channel.calls

    async def test_password_passed_unchanged_by_default(
        self, login_data, fake_channel
    ):
        await run_session(
            login_data, [], _noop, channel_factory=_factory(fake_channel)
        )

        assert ("change_user", ["admin", "secret"]) in fake_channel.calls


class TestConfigurationFailures:
    async def test_missing_login_data(self, fake_channel):
        with pytest.raises(ConfigurationError, match="login data missing"):
            await run_session(
                None, [], _noop, channel_factory=_factory(fake_channel)
            )
        assert fake_channel.calls == []

    async def test_invalid_login_data_never_connects(self, fake_channel):
        login = LoginData(server="", username="admin", principal="p")

        with pytest.raises(ConfigurationError):
            await run_session(
                login, [], _noop, channel_factory=_factory(fake_channel)
            )
        assert fake_channel.calls == []

    async def test_empty_principal(self, login_data, fake_channel):
        login_data.principal = ""

        with pytest.raises(ConfigurationError, match="please set principal"):
            await run_session(
                login_data, [], _noop, channel_factory=_factory(fake_channel)
            )
        assert "change_principal" not in [n for n, _ in fake_channel.calls]
        assert fake_channel.disconnect_count == 1


class TestSetupFailures:
    async def test_connect_failure(self, login_data, fake_channel):
        fake_channel.connect_error = ChannelError("refused")
        manager = SessionManager(
            login_data, channel_factory=_factory(fake_channel)
        )

        with pytest.raises(SessionConnectionError, match="refused"):
            await manager.run([], _noop)

        assert manager.state is SessionState.CLOSED
        assert fake_channel.disconnect_count == 0

    async def test_handshake_failure_closes_channel(
        self, login_data, fake_channel
    ):
        fake_channel.handshake_error = ChannelError("bad hello")

        with pytest.raises(SessionConnectionError):
            await run_session(
                login_data, [], _noop, channel_factory=_factory(fake_channel)
            )
        assert fake_channel.disconnect_count == 1

    async def test_bad_credentials(self, login_data, fake_channel):
        fake_channel.change_user_error = ChannelError("wrong password")
        ran = []

        async def operation(channel, params, data):
            ran.append(True)
            return []

        with pytest.raises(AuthenticationError, match="wrong password"):
            await run_session(
                login_data,
                [],
                operation,
                channel_factory=_factory(fake_channel),
            )
        assert ran == []
        assert fake_channel.disconnect_count == 1

    async def test_principal_rejected(self, login_data, fake_channel):
        fake_channel.principal_error = ChannelError("unknown principal")

        with pytest.raises(AuthenticationError):
            await run_session(
                login_data, [], _noop, channel_factory=_factory(fake_channel)
            )
        assert fake_channel.disconnect_count == 1

    async def test_version_too_old(self, login_data, fake_channel):
        fake_channel.responses["PartnerNet.getVersionNo"] = ["8000"]

        async def must_not_run(channel, params, data):
            raise AssertionError("operation ran on an incompatible server")

        with pytest.raises(IncompatibleServerError) as exc_info:
            await run_session(
                login_data,
                [],
                must_not_run,
                channel_factory=_factory(fake_channel),
            )
        assert "Current version: 8000 Required version: 8034" in str(
            exc_info.value
        )
        assert fake_channel.disconnect_count == 1

    async def test_version_missing(self, login_data, fake_channel):
        fake_channel.responses["PartnerNet.getVersionNo"] = []

        with pytest.raises(
            IncompatibleServerError, match="only available on DOCUMENTS"
        ):
            await run_session(
                login_data, [], _noop, channel_factory=_factory(fake_channel)
            )

    async def test_version_exactly_minimum_is_accepted(
        self, login_data, fake_channel
    ):
        fake_channel.responses["PartnerNet.getVersionNo"] = ["8034"]

        assert (
            await run_session(
                login_data, [], _noop, channel_factory=_factory(fake_channel)
            )
            == []
        )

    async def test_setup_failure_hides_close_failure(
        self, login_data, fake_channel
    ):
        fake_channel.change_user_error = ChannelError("denied")
        fake_channel.disconnect_error = ChannelError("socket gone")

        with pytest.raises(AuthenticationError):
            await run_session(
                login_data, [], _noop, channel_factory=_factory(fake_channel)
            )


class TestCloseFailures:
    async def test_close_failure_after_success_is_raised(
        self, login_data, fake_channel
    ):
        fake_channel.disconnect_error = ChannelError("socket gone")

        with pytest.raises(CloseError) as exc_info:
            await run_session(
                login_data, [], _noop, channel_factory=_factory(fake_channel)
            )
        assert exc_info.value.operation == "closeConnection"
        assert str(exc_info.value) == "closeConnection failed: socket gone"

    async def test_operation_error_wins_over_close_failure(
        self, login_data, fake_channel, caplog
    ):
        fake_channel.disconnect_error = ChannelError("socket gone")

        async def failing(channel, params, data):
            raise DocumentsError("boom", operation="runScript")

        with pytest.raises(DocumentsError) as exc_info:
            await run_session(
                login_data,
                [],
                failing,
                channel_factory=_factory(fake_channel),
            )
        assert not isinstance(exc_info.value, CloseError)
        assert str(exc_info.value) == "runScript failed: boom"
        assert "socket gone" in caplog.text

    async def test_operation_error_closes_once(self, login_data, fake_channel):
        async def failing(channel, params, data):
            raise ValueError("local problem")

        with pytest.raises(ValueError):
            await run_session(
                login_data,
                [],
                failing,
                channel_factory=_factory(fake_channel),
            )
        assert fake_channel.disconnect_count == 1


class TestCancellation:
    async def test_cancelled_operation_closes_channel(
        self, login_data, fake_channel
    ):
        started = asyncio.Event()

        async def slow(channel, params, data):
            started.set()
            await asyncio.sleep(10)
            return []

        manager = SessionManager(
            login_data, channel_factory=_factory(fake_channel)
        )
        task = asyncio.create_task(manager.run([], slow))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert fake_channel.disconnect_count == 1
        assert manager.state is SessionState.CLOSED

    async def test_cancelled_during_setup_closes_channel(
        self, login_data, fake_channel
    ):
        entered = asyncio.Event()

        async def slow_principal(principal):
            entered.set()
            await asyncio.sleep(10)

        fake_channel.change_principal = slow_principal
        task = asyncio.create_task(
            run_session(
                login_data, [], _noop, channel_factory=_factory(fake_channel)
            )
        )
        await entered.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert fake_channel.disconnect_count == 1


class TestCheckVersion:
    def test_met(self):
        login = LoginData(server="h", username="u", documents_version="8041")
        assert check_version(login, "8041") is True
        assert login.last_warning is None

    def test_compared_as_numbers(self):
        login = LoginData(server="h", username="u", documents_version="10000")
        assert check_version(login, "8041") is True

    def test_category_warning(self):
        login = LoginData(server="h", username="u", documents_version="8040")

        assert check_version(login, "8041") is False
        assert login.last_warning == (
            "For using category features DOCUMENTS 8041 is required"
        )

    def test_other_threshold_sets_no_warning(self):
        login = LoginData(server="h", username="u", documents_version="8000")

        assert check_version(login, "8034") is False
        assert login.last_warning is None

    def test_unknown_version(self):
        login = LoginData(server="h", username="u")
        assert check_version(login, "8034") is False


class TestFakeChannelIsolation:
    async def test_each_session_uses_a_new_channel(
        self, login_data, make_fake_channel
    ):
        channels = []

        def factory(data):
            channel = make_fake_channel()
            channels.append(channel)
            return channel

        await run_session(login_data, [], _noop, channel_factory=factory)
        await run_session(login_data, [], _noop, channel_factory=factory)

        assert len(channels) == 2
        assert all(c.disconnect_count == 1 for c in channels)
