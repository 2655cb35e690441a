import asyncio

import pytest

from coreason_preview.exceptions import DuplicateBootError
from coreason_preview.runtime_manager import RuntimeHolder
from fakes import FakeBackend


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_boot() -> None:
    backend = FakeBackend(boot_delay=0.05)
    created = []

    def factory() -> FakeBackend:
        created.append(backend)
        return backend

    results = await asyncio.gather(*(RuntimeHolder.get_or_boot(factory) for _ in range(5)))

    assert all(result is backend for result in results)
    assert len(created) == 1
    assert backend.boot_calls == 1
    assert RuntimeHolder.current() is backend
    assert not RuntimeHolder.is_booting()


@pytest.mark.asyncio
async def test_later_callers_reuse_handle() -> None:
    backend = FakeBackend()
    await RuntimeHolder.get_or_boot(lambda: backend)

    second = await RuntimeHolder.get_or_boot(lambda: FakeBackend())

    assert second is backend
    assert backend.boot_calls == 1


@pytest.mark.asyncio
async def test_duplicate_boot_recovers_existing_instance() -> None:
    booted = FakeBackend()
    await booted.boot()

    # Holder state lost (e.g. module reload) while the runtime is still up
    result = await RuntimeHolder.get_or_boot(lambda: booted)

    assert result is booted
    assert booted.boot_calls == 2


@pytest.mark.asyncio
async def test_duplicate_boot_without_instance_propagates() -> None:
    class Orphaned(FakeBackend):
        async def boot(self) -> None:
            raise DuplicateBootError()

    with pytest.raises(DuplicateBootError):
        await RuntimeHolder.get_or_boot(Orphaned)
    assert RuntimeHolder.current() is None


@pytest.mark.asyncio
async def test_failed_boot_can_be_retried() -> None:
    attempts = 0

    class Flaky(FakeBackend):
        async def boot(self) -> None:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise RuntimeError("boot failed")
            await super().boot()

    with pytest.raises(RuntimeError):
        await RuntimeHolder.get_or_boot(Flaky)
    assert not RuntimeHolder.is_booting()

    backend = await RuntimeHolder.get_or_boot(Flaky)
    assert isinstance(backend, Flaky)
    assert attempts == 2
