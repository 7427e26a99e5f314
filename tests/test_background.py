import anyio
import pytest

from edgecache import BackgroundTasks


@pytest.mark.anyio
async def test_exit_waits_for_spawned_tasks():
    done = []

    async def slow_write(value: str) -> None:
        await anyio.sleep(0.01)
        done.append(value)

    async with BackgroundTasks() as tasks:
        tasks.spawn(slow_write, "a")
        tasks.spawn(slow_write, "b")
        assert tasks.pending == 2

    assert sorted(done) == ["a", "b"]
    assert tasks.pending == 0
    assert not tasks.running


@pytest.mark.anyio
async def test_failing_task_does_not_cancel_others(caplog):
    done = []

    async def broken() -> None:
        raise RuntimeError("boom")

    async def fine() -> None:
        await anyio.sleep(0.01)
        done.append(True)

    async with BackgroundTasks() as tasks:
        tasks.spawn(broken)
        tasks.spawn(fine)

    assert done == [True]
    assert "failed" in caplog.text


@pytest.mark.anyio
async def test_tasks_are_drained_when_the_body_fails():
    done = []

    async def write() -> None:
        await anyio.sleep(0.01)
        done.append(True)

    with pytest.raises(ValueError):
        async with BackgroundTasks() as tasks:
            tasks.spawn(write)
            raise ValueError("request failed")

    assert done == [True]


def test_spawn_requires_a_running_group():
    async def noop() -> None: ...

    with pytest.raises(RuntimeError):
        BackgroundTasks().spawn(noop)


@pytest.mark.anyio
async def test_cannot_be_entered_twice():
    async with BackgroundTasks() as tasks:
        with pytest.raises(RuntimeError):
            await tasks.__aenter__()
