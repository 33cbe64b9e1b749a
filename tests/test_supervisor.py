import anyio
import pytest

from sessionbot.credentials import MemoryCredentialStore
from sessionbot.model import ConnectionState, StopReason
from sessionbot.plugins import PluginRegistry
from sessionbot.supervisor import Supervisor
from sessionbot.transport import CloseReason, ConnectionClosed
from tests.fakes import FakeFactory, RecordingSleep, make_settings, wait_until


def _supervisor(tg, factory: FakeFactory, *, on_session_ended=None, **settings) -> Supervisor:
    return Supervisor(
        settings=make_settings(**settings),
        factory=factory,
        credentials_store=MemoryCredentialStore(),
        plugins=PluginRegistry(),
        task_group=tg,
        sleep=RecordingSleep(),
        on_session_ended=on_session_ended,
    )


@pytest.mark.anyio
async def test_start_session_reuses_live_runner() -> None:
    factory = FakeFactory()
    async with anyio.create_task_group() as tg:
        supervisor = _supervisor(tg, factory)
        first = await supervisor.start_session("alpha")
        second = await supervisor.start_session("alpha")

        assert first is second
        assert len(factory.connections) == 1
        assert supervisor.store.ids() == ["alpha"]
        await supervisor.stop_all()


@pytest.mark.anyio
async def test_start_session_rejects_invalid_id() -> None:
    async with anyio.create_task_group() as tg:
        supervisor = _supervisor(tg, FakeFactory())
        with pytest.raises(ValueError, match="Invalid session id"):
            await supervisor.start_session("../escape")


@pytest.mark.anyio
async def test_start_many_skips_failures() -> None:
    factory = FakeFactory()
    factory.failures.append(RuntimeError("refused"))
    async with anyio.create_task_group() as tg:
        supervisor = _supervisor(tg, factory)
        started = await supervisor.start_many(["alpha", "not valid!", "beta"])

        assert started == ["beta"]
        assert supervisor.store.ids() == ["beta"]
        await supervisor.stop_all()


@pytest.mark.anyio
async def test_sessions_are_independent() -> None:
    factory = FakeFactory()
    async with anyio.create_task_group() as tg:
        supervisor = _supervisor(tg, factory)
        alpha = await supervisor.start_session("alpha")
        beta = await supervisor.start_session("beta")

        await factory.connections[0].emit(ConnectionClosed(reason=CloseReason.LOGGED_OUT))
        await wait_until(lambda: alpha.state is ConnectionState.STOPPED)

        assert beta.state is ConnectionState.CONNECTING
        assert supervisor.store.ids() == ["beta"]
        assert [info.session_id for info in supervisor.sessions()] == ["beta"]
        await supervisor.stop_all()


@pytest.mark.anyio
async def test_stop_session_and_stop_all() -> None:
    async with anyio.create_task_group() as tg:
        supervisor = _supervisor(tg, FakeFactory())
        await supervisor.start_many(["alpha", "beta"])

        assert await supervisor.stop_session("alpha") is True
        assert await supervisor.stop_session("alpha") is False
        await supervisor.stop_all()

        assert len(supervisor.store) == 0
        assert supervisor.sessions() == []


@pytest.mark.anyio
async def test_ended_hook_reports_exhaustion() -> None:
    ended: list[tuple[str, StopReason]] = []
    factory = FakeFactory()
    async with anyio.create_task_group() as tg:
        supervisor = _supervisor(
            tg,
            factory,
            on_session_ended=lambda sid, reason: ended.append((sid, reason)),
            reconnect={"max_attempts": 0},
        )
        runner = await supervisor.start_session("alpha")
        await factory.connections[0].emit(ConnectionClosed())
        await wait_until(lambda: runner.state is ConnectionState.STOPPED)

    assert ended == [("alpha", StopReason.RECONNECT_EXHAUSTED)]
    assert len(factory.connections) == 1


@pytest.mark.anyio
async def test_failing_ended_hook_is_contained() -> None:
    def _hook(session_id: str, reason: StopReason) -> None:
        raise RuntimeError(f"{session_id} {reason.value}")

    factory = FakeFactory()
    async with anyio.create_task_group() as tg:
        supervisor = _supervisor(tg, factory, on_session_ended=_hook)
        runner = await supervisor.start_session("alpha")
        await factory.connections[0].emit(ConnectionClosed(status_code=401))
        await wait_until(lambda: runner.state is ConnectionState.STOPPED)

    assert "alpha" not in supervisor.store


class _GatedFactory(FakeFactory):
    """Every connect after the first waits until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = anyio.Event()
        self.waiting = anyio.Event()

    async def connect(self, session_id, credentials):
        if self.connections:
            self.waiting.set()
            await self.gate.wait()
        return await super().connect(session_id, credentials)


@pytest.mark.anyio
async def test_stop_session_during_reconnect() -> None:
    factory = _GatedFactory()
    async with anyio.create_task_group() as tg:
        supervisor = _supervisor(tg, factory)
        runner = await supervisor.start_session("alpha")
        await factory.connections[0].emit(ConnectionClosed())
        await factory.waiting.wait()

        assert supervisor.store.get("alpha") is runner
        assert await supervisor.stop_session("alpha") is True
        factory.gate.set()

    assert runner.state is ConnectionState.STOPPED
    assert "alpha" not in supervisor.store
    assert len(factory.connections) == 1
    assert factory.connections[0].closed is True
