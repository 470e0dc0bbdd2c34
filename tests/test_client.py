import json

import httpx
import pytest
import respx

from bento.client import Client, ClientError

BASE = "http://node.test"


def make_client(**kwargs):
    kwargs.setdefault("min_delay", 0.0)
    kwargs.setdefault("max_delay", 0.0)
    return Client(BASE, **kwargs)


@pytest.mark.asyncio
async def test_get_blocks_sends_timestamps_as_query():
    payload = {"blocks": [[{"hash": "h1"}]]}
    with respx.mock(base_url=BASE) as router:
        route = router.get("/blockflow/blocks").mock(return_value=httpx.Response(200, json=payload))
        async with make_client() as client:
            result = await client.get_blocks(1000, 2000)
    assert result == payload
    params = route.calls.last.request.url.params
    assert params["fromTs"] == "1000"
    assert params["toTs"] == "2000"


@pytest.mark.asyncio
async def test_get_blocks_and_events_uses_rich_blocks():
    payload = {"blocksAndEvents": [[{"block": {"hash": "h"}, "events": []}]]}
    with respx.mock(base_url=BASE) as router:
        route = router.get("/blockflow/rich-blocks").mock(
            return_value=httpx.Response(200, json=payload)
        )
        async with make_client() as client:
            result = await client.get_blocks_and_events(1000, 2000)
    assert result == payload
    assert route.calls.last.request.url.params["fromTs"] == "1000"
    assert route.calls.last.request.url.params["toTs"] == "2000"


@pytest.mark.asyncio
async def test_get_blocks_and_events_error_status():
    with respx.mock(base_url=BASE) as router:
        router.get("/blockflow/rich-blocks").mock(return_value=httpx.Response(400))
        async with make_client() as client:
            with pytest.raises(ClientError, match="API returned error status") as info:
                await client.get_blocks_and_events(1, 2)
    assert info.value.status_code == 400


@pytest.mark.asyncio
async def test_get_blocks_and_events_decode_error():
    with respx.mock(base_url=BASE) as router:
        router.get("/blockflow/rich-blocks").mock(
            return_value=httpx.Response(200, content=b"not json")
        )
        async with make_client() as client:
            with pytest.raises(ClientError, match="Error decoding response body"):
                await client.get_blocks_and_events(1, 2)


@pytest.mark.asyncio
async def test_block_endpoints_put_hash_in_path():
    with respx.mock(base_url=BASE) as router:
        block = router.get("/blockflow/blocks/abc").mock(
            return_value=httpx.Response(200, json={"hash": "abc"})
        )
        rich = router.get("/blockflow/rich-blocks/abc").mock(
            return_value=httpx.Response(200, json={"block": {"hash": "abc"}, "events": []})
        )
        header = router.get("/blockflow/headers/abc").mock(
            return_value=httpx.Response(200, json={"hash": "abc", "height": 7})
        )
        async with make_client() as client:
            assert await client.get_block("abc") == {"hash": "abc"}
            assert await client.get_block_and_events_by_hash("abc") == {
                "block": {"hash": "abc"},
                "events": [],
            }
            assert await client.get_block_header("abc") == {"hash": "abc", "height": 7}
    assert block.call_count == rich.call_count == header.call_count == 1


@pytest.mark.asyncio
async def test_get_block_hash_by_height_returns_headers():
    with respx.mock(base_url=BASE) as router:
        route = router.get("/blockflow/hashes").mock(
            return_value=httpx.Response(200, json={"headers": ["h1", "h2"]})
        )
        async with make_client() as client:
            hashes = await client.get_block_hash_by_height(5, 1, 2)
    assert hashes == ["h1", "h2"]
    params = route.calls.last.request.url.params
    assert (params["height"], params["fromGroup"], params["toGroup"]) == ("5", "1", "2")


@pytest.mark.asyncio
async def test_get_block_hash_by_height_missing_headers():
    with respx.mock(base_url=BASE) as router:
        router.get("/blockflow/hashes").mock(return_value=httpx.Response(200, json={}))
        async with make_client() as client:
            with pytest.raises(ClientError):
                await client.get_block_hash_by_height(0, 0, 0)


@pytest.mark.asyncio
async def test_get_chain_info():
    with respx.mock(base_url=BASE) as router:
        route = router.get("/blockflow/chain-info").mock(
            return_value=httpx.Response(200, json={"currentHeight": 42})
        )
        async with make_client() as client:
            info = await client.get_chain_info(0, 3)
    assert info == {"currentHeight": 42}
    assert route.calls.last.request.url.params["toGroup"] == "3"


@pytest.mark.asyncio
async def test_get_tx_by_hash_null_is_none():
    with respx.mock(base_url=BASE) as router:
        router.get("/transactions/details/tx1").mock(
            return_value=httpx.Response(200, content=b"null")
        )
        async with make_client() as client:
            assert await client.get_tx_by_hash("tx1") is None


@pytest.mark.asyncio
async def test_get_block_txs_pagination():
    txs = [{"txHash": "t1"}, {"txHash": "t2"}]
    with respx.mock(base_url=BASE) as router:
        route = router.get("/blocks/bh/transactions").mock(
            return_value=httpx.Response(200, json=txs)
        )
        async with make_client() as client:
            result = await client.get_block_txs("bh", 10, 20)
    assert result == txs
    params = route.calls.last.request.url.params
    assert (params["limit"], params["offset"]) == ("10", "20")


@pytest.mark.asyncio
async def test_call_contract_posts_json():
    call = {"group": 0, "address": "addr", "methodIndex": 1}
    with respx.mock(base_url=BASE) as router:
        route = router.post("/contracts/call-contract").mock(
            return_value=httpx.Response(200, json={"returns": []})
        )
        async with make_client() as client:
            result = await client.call_contract(call)
    assert result == {"returns": []}
    request = route.calls.last.request
    assert json.loads(request.content) == call
    assert request.headers["content-type"] == "application/json"


@pytest.mark.asyncio
async def test_call_contract_error_status():
    with respx.mock(base_url=BASE) as router:
        router.post("/contracts/call-contract").mock(return_value=httpx.Response(404))
        async with make_client() as client:
            with pytest.raises(ClientError) as info:
                await client.call_contract({})
    assert info.value.status_code == 404


@pytest.mark.asyncio
async def test_transient_status_is_retried():
    with respx.mock(base_url=BASE) as router:
        route = router.get("/blockflow/chain-info")
        route.side_effect = [httpx.Response(503), httpx.Response(200, json={"currentHeight": 1})]
        async with make_client() as client:
            info = await client.get_chain_info(0, 0)
    assert info == {"currentHeight": 1}
    assert route.call_count == 2


@pytest.mark.asyncio
async def test_retries_are_bounded_for_status():
    with respx.mock(base_url=BASE) as router:
        route = router.get("/blockflow/chain-info").mock(return_value=httpx.Response(500))
        async with make_client(max_retries=2) as client:
            with pytest.raises(ClientError) as info:
                await client.get_chain_info(0, 0)
    assert route.call_count == 3
    assert info.value.status_code == 500


@pytest.mark.asyncio
async def test_transport_errors_are_retried_then_raised():
    with respx.mock(base_url=BASE) as router:
        route = router.get("/blockflow/chain-info").mock(side_effect=httpx.ConnectError("down"))
        async with make_client(max_retries=2) as client:
            with pytest.raises(ClientError):
                await client.get_chain_info(0, 0)
    assert route.call_count == 3


@pytest.mark.asyncio
async def test_client_error_status_is_not_retried():
    with respx.mock(base_url=BASE) as router:
        route = router.get("/blockflow/blocks/x").mock(return_value=httpx.Response(400))
        async with make_client() as client:
            with pytest.raises(ClientError):
                await client.get_block("x")
    assert route.call_count == 1


def test_invalid_retry_settings():
    with pytest.raises(ValueError):
        Client(BASE, max_retries=-1)
    with pytest.raises(ValueError):
        Client(BASE, min_delay=2.0, max_delay=1.0)


@pytest.mark.asyncio
async def test_base_url_trailing_slash_is_ignored():
    with respx.mock(base_url=BASE) as router:
        route = router.get("/blockflow/blocks/abc").mock(
            return_value=httpx.Response(200, json={"hash": "abc"})
        )
        async with Client(BASE + "/", min_delay=0.0, max_delay=0.0) as client:
            assert client.base_url == BASE
            await client.get_block("abc")
    assert route.call_count == 1