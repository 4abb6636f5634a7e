"""
Tests for invocation fan-out across loaded providers.
"""

import asyncio

import pytest

from extensions.fanout import InvocationFanout
from extensions.loader import ExtensionLoader
from extensions.provider import SearchResult

from .conftest import build_archive


@pytest.fixture
def loader(store) -> ExtensionLoader:
    return ExtensionLoader(store)


@pytest.fixture
def fanout(loader) -> InvocationFanout:
    return InvocationFanout(loader)


class TestSearch:
    @pytest.mark.asyncio
    async def test_no_providers(self, fanout):
        assert await fanout.search("anything") == []

    @pytest.mark.asyncio
    async def test_results_keep_registry_order(self, install_provider, loader, fanout):
        install_provider("a", results=["a1", "a2"])
        install_provider("b", results=["b1"])
        install_provider("c", results=["c1", "c2"], is_async=True)
        await loader.reload()

        results = await fanout.search("query")

        assert [r.name for r in results] == ["a1", "a2", "b1", "c1", "c2"]
        assert all(isinstance(r, SearchResult) for r in results)

    @pytest.mark.asyncio
    async def test_failing_provider_is_left_out(self, install_provider, loader, fanout):
        install_provider("a", results=["from a"])
        install_provider("b", raises="provider b is broken")
        install_provider("c", results=["from c"])
        await loader.reload()

        results = await fanout.search("query")

        assert [r.name for r in results] == ["from a", "from c"]

    @pytest.mark.asyncio
    async def test_failing_async_provider_is_left_out(self, install_provider, loader, fanout):
        install_provider("a", results=["from a"])
        install_provider("b", raises="boom", is_async=True)
        await loader.reload()

        assert [r.name for r in await fanout.search("q")] == ["from a"]

    @pytest.mark.asyncio
    async def test_unloaded_artifacts_are_skipped(self, install_provider, store, loader, fanout):
        install_provider("a", results=["from a"])
        store.install("b.pyz", build_archive({"util.py": "X = 1"}))
        await loader.reload()

        assert [r.name for r in await fanout.search("q")] == ["from a"]


class TestInvokeDetailed:
    @pytest.mark.asyncio
    async def test_reports_each_provider(self, install_provider, loader, fanout):
        install_provider("a", results=["from a"])
        install_provider("b", raises="broken")
        await loader.reload()

        outcomes = await fanout.invoke_detailed("search", "q")

        assert [o.provider.name for o in outcomes] == ["a", "b"]
        assert outcomes[0].ok and len(outcomes[0].results) == 1
        assert not outcomes[1].ok
        assert isinstance(outcomes[1].error, RuntimeError)

    @pytest.mark.asyncio
    async def test_unknown_operation(self, install_provider, loader, fanout):
        install_provider("a")
        await loader.reload()

        outcomes = await fanout.invoke_detailed("no_such_operation")

        assert isinstance(outcomes[0].error, AttributeError)
        assert await fanout.invoke("no_such_operation") == []

    @pytest.mark.asyncio
    async def test_non_sequence_result(self, store, loader, fanout):
        source = (
            "from extensions.provider import Provider\n"
            "class Odd(Provider):\n"
            "    name = 'Odd'\n"
            "    def search(self, query):\n"
            "        return 42\n"
        )
        store.install("odd.pyz", build_archive({"provider.py": source}))
        await loader.reload()

        outcomes = await fanout.invoke_detailed("search", "q")

        assert isinstance(outcomes[0].error, TypeError)

    @pytest.mark.asyncio
    async def test_none_result_is_empty(self, store, loader, fanout):
        source = (
            "from extensions.provider import Provider\n"
            "class Quiet(Provider):\n"
            "    def search(self, query):\n"
            "        return None\n"
        )
        store.install("quiet.pyz", build_archive({"provider.py": source}))
        await loader.reload()

        outcomes = await fanout.invoke_detailed("search", "q")

        assert outcomes[0].ok and outcomes[0].results == []


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_providers_run_concurrently(self, store, loader, fanout):
        source = (
            "import asyncio\n"
            "from extensions.provider import Provider, SearchResult\n"
            "class Slow(Provider):\n"
            "    async def search(self, query):\n"
            "        await asyncio.sleep(0.2)\n"
            "        return [SearchResult(name=query, type='Movie')]\n"
        )
        for stem in ("a", "b", "c", "d", "e"):
            store.install(f"{stem}.pyz", build_archive({"provider.py": source}))
        await loader.reload()

        loop = asyncio.get_running_loop()
        started = loop.time()
        results = await fanout.search("q")
        elapsed = loop.time() - started

        assert len(results) == 5
        assert elapsed < 0.8

    @pytest.mark.asyncio
    async def test_search_during_reload_sees_a_full_registry(
        self, install_provider, loader, fanout
    ):
        for stem in ("a", "b", "c"):
            install_provider(stem)
        await loader.reload()

        results, _ = await asyncio.gather(fanout.search("q"), loader.reload())

        assert len(results) == 3


class TestProviderResponses:
    @pytest.mark.asyncio
    async def test_generator_failing_mid_iteration_is_left_out(
        self, install_provider, store, loader, fanout
    ):
        source = (
            "from extensions.provider import Provider, SearchResult\n"
            "class Streaming(Provider):\n"
            "    name = 'b'\n"
            "    def search(self, query):\n"
            "        yield SearchResult(name='b result', type='Movie')\n"
            "        raise RuntimeError('connection dropped')\n"
        )
        install_provider("a")
        store.install("b.pyz", build_archive({"provider.py": source}))
        install_provider("c")
        await loader.reload()

        results = await fanout.search("q")

        assert [r.name for r in results] == ["a result", "c result"]
        outcomes = await fanout.invoke_detailed("search", "q")
        assert isinstance(outcomes[1].error, RuntimeError)

    @pytest.mark.asyncio
    async def test_generator_results_are_collected(self, store, loader, fanout):
        source = (
            "from extensions.provider import Provider, SearchResult\n"
            "class Streaming(Provider):\n"
            "    def search(self, query):\n"
            "        for n in ('one', 'two'):\n"
            "            yield SearchResult(name=n, type='Movie')\n"
        )
        store.install("gen.pyz", build_archive({"provider.py": source}))
        await loader.reload()

        assert [r.name for r in await fanout.search("q")] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_async_generator_results_are_collected(self, store, loader, fanout):
        source = (
            "from extensions.provider import Provider, SearchResult\n"
            "class Streaming(Provider):\n"
            "    async def search(self, query):\n"
            "        yield SearchResult(name=query, type='Movie')\n"
        )
        store.install("agen.pyz", build_archive({"provider.py": source}))
        await loader.reload()

        assert [r.name for r in await fanout.search("q")] == ["q"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["'abc'", "b'abc'", "{'name': 'x'}"])
    async def test_string_and_mapping_results_are_rejected(
        self, install_provider, store, loader, fanout, value
    ):
        source = (
            "from extensions.provider import Provider\n"
            "class Scalar(Provider):\n"
            "    def search(self, query):\n"
            f"        return {value}\n"
        )
        install_provider("a")
        store.install("b.pyz", build_archive({"provider.py": source}))
        await loader.reload()

        outcomes = await fanout.invoke_detailed("search", "q")

        assert isinstance(outcomes[1].error, TypeError)
        assert [r.name for r in await fanout.search("q")] == ["a result"]

    @pytest.mark.asyncio
    async def test_sys_exit_in_provider_is_contained(self, install_provider, store, loader, fanout):
        source = (
            "import sys\n"
            "from extensions.provider import Provider\n"
            "class Quitter(Provider):\n"
            "    def search(self, query):\n"
            "        sys.exit(2)\n"
        )
        install_provider("a")
        store.install("b.pyz", build_archive({"provider.py": source}))
        await loader.reload()

        assert [r.name for r in await fanout.search("q")] == ["a result"]
