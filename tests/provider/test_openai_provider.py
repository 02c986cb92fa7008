import datetime as dt

import httpx
import pytest
import respx

from costtop.errors import AllSourcesFailedError, TransportError
from costtop.provider.openai import OPENAI_BASE_URL, USAGE_ENDPOINTS, OpenAIProvider

START = dt.datetime(2024, 3, 1, tzinfo=dt.timezone.utc)
# 2024-03-01T00:00:00Z
DAY_ONE = 1709251200
DAY_TWO = DAY_ONE + 86400


def _usage_page(results: "list[dict]", start_time: "int" = DAY_ONE) -> "dict":
    return {
        "data": [{"start_time": start_time, "end_time": start_time + 86400, "results": results}],
        "has_more": False,
    }


def _mock_empty_usage(*endpoints: "str") -> "None":
    for endpoint in endpoints:
        respx.get(f"{OPENAI_BASE_URL}/usage/{endpoint}").mock(
            return_value=httpx.Response(200, json={"data": [], "has_more": False})
        )


class TestOpenAIProviderFetchCosts:
    @pytest.mark.asyncio
    @respx.mock
    async def test_fetches_and_parses_costs(self) -> "None":
        route = respx.get(f"{OPENAI_BASE_URL}/costs").mock(
            return_value=httpx.Response(
                200,
                json={
                    "data": [
                        {
                            "start_time": DAY_ONE,
                            "end_time": DAY_TWO,
                            "results": [
                                {"amount": {"value": 1.25, "currency": "usd"}, "line_item": "gpt-4o"},
                                {"amount": {"value": "0.5"}, "line_item": None},
                            ],
                        }
                    ],
                    "has_more": False,
                },
            )
        )

        provider = OpenAIProvider(api_key="sk-admin")
        records = await provider.fetch_costs(START)
        await provider.close()

        assert len(records) == 2
        assert records[0].date == dt.date(2024, 3, 1)
        assert records[0].amount == 1.25
        assert records[0].category == "gpt-4o"
        assert records[1].amount == 0.5
        assert records[1].category is None

        request = route.calls[0].request
        assert request.headers["Authorization"] == "Bearer sk-admin"
        assert request.url.params["start_time"] == str(DAY_ONE)
        assert request.url.params["bucket_width"] == "1d"
        assert request.url.params["group_by"] == "line_item"

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_status_raises_transport_error(self) -> "None":
        respx.get(f"{OPENAI_BASE_URL}/costs").mock(
            return_value=httpx.Response(401, json={"error": "invalid key"})
        )

        provider = OpenAIProvider(api_key="sk-bad")
        with pytest.raises(TransportError) as exc_info:
            await provider.fetch_costs(START)

        assert exc_info.value.status_code == 401


class TestOpenAIProviderFetchUsage:
    @pytest.mark.asyncio
    @respx.mock
    async def test_fetches_and_parses_usage(self) -> "None":
        route = respx.get(f"{OPENAI_BASE_URL}/usage/completions").mock(
            return_value=httpx.Response(
                200,
                json=_usage_page(
                    [
                        {
                            "model": "gpt-4o",
                            "api_key_id": "key_abc",
                            "input_tokens": 100,
                            "output_tokens": 50,
                            "input_cached_tokens": 40,
                            "num_model_requests": 2,
                        }
                    ]
                ),
            )
        )
        _mock_empty_usage("embeddings", "images")

        provider = OpenAIProvider(api_key="sk-admin")
        records = await provider.fetch_usage(START)

        assert len(records) == 1
        record = records[0]
        assert record.date == dt.date(2024, 3, 1)
        assert record.model == "gpt-4o"
        assert record.api_key_id == "key_abc"
        assert record.input_tokens == 100
        assert record.output_tokens == 50
        assert record.cache_read_tokens == 40
        assert record.uncached_tokens == 60
        assert record.request_count == 2

        params = route.calls[0].request.url.params
        assert params.get_list("group_by") == ["model", "api_key_id"]
        assert params["bucket_width"] == "1d"

    @pytest.mark.asyncio
    @respx.mock
    async def test_skips_rows_without_tokens(self) -> "None":
        respx.get(f"{OPENAI_BASE_URL}/usage/images").mock(
            return_value=httpx.Response(
                200,
                json=_usage_page(
                    [{"model": "dall-e-3", "images": 4, "num_model_requests": 4}]
                ),
            )
        )
        _mock_empty_usage("completions", "embeddings")

        provider = OpenAIProvider(api_key="sk-admin")
        records = await provider.fetch_usage(START)

        assert records == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_partial_endpoint_failure_keeps_other_records(self) -> "None":
        respx.get(f"{OPENAI_BASE_URL}/usage/completions").mock(
            return_value=httpx.Response(
                200,
                json=_usage_page([{"model": "gpt-4o", "input_tokens": 10, "output_tokens": 5}]),
            )
        )
        respx.get(f"{OPENAI_BASE_URL}/usage/embeddings").mock(
            return_value=httpx.Response(500, text="internal error")
        )
        _mock_empty_usage("images")

        provider = OpenAIProvider(api_key="sk-admin")
        records = await provider.fetch_usage(START)

        assert len(records) == 1
        assert records[0].model == "gpt-4o"

    @pytest.mark.asyncio
    @respx.mock
    async def test_failed_endpoint_between_successful_ones(self) -> "None":
        respx.get(f"{OPENAI_BASE_URL}/usage/completions").mock(
            return_value=httpx.Response(
                200,
                json=_usage_page([{"model": "gpt-4o", "input_tokens": 10, "output_tokens": 5}]),
            )
        )
        respx.get(f"{OPENAI_BASE_URL}/usage/embeddings").mock(
            side_effect=httpx.ReadTimeout("timed out")
        )
        respx.get(f"{OPENAI_BASE_URL}/usage/images").mock(
            return_value=httpx.Response(
                200,
                json=_usage_page([{"model": "gpt-image-1", "input_tokens": 7, "output_tokens": 3}]),
            )
        )

        provider = OpenAIProvider(api_key="sk-admin")
        records = await provider.fetch_usage(START)

        assert [r.model for r in records] == ["gpt-4o", "gpt-image-1"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_all_endpoints_failing_raises(self) -> "None":
        for endpoint in USAGE_ENDPOINTS:
            respx.get(f"{OPENAI_BASE_URL}/usage/{endpoint}").mock(
                return_value=httpx.Response(503, text="unavailable")
            )

        provider = OpenAIProvider(api_key="sk-admin")
        with pytest.raises(AllSourcesFailedError) as exc_info:
            await provider.fetch_usage(START)

        assert set(exc_info.value.failures) == set(USAGE_ENDPOINTS)
        for endpoint in USAGE_ENDPOINTS:
            assert f"{endpoint}: API error: 503 - unavailable" in str(exc_info.value)
        assert str(exc_info.value).startswith("Failed to fetch usage from any endpoint")

    @pytest.mark.asyncio
    @respx.mock
    async def test_handles_pagination(self) -> "None":
        route = respx.get(f"{OPENAI_BASE_URL}/usage/completions").mock(
            side_effect=[
                httpx.Response(
                    200,
                    json={
                        **_usage_page(
                            [{"model": "gpt-4o", "input_tokens": 10, "output_tokens": 5}]
                        ),
                        "has_more": True,
                        "next_page": "page2",
                    },
                ),
                httpx.Response(
                    200,
                    json=_usage_page(
                        [{"model": "gpt-4o", "input_tokens": 20, "output_tokens": 10}],
                        start_time=DAY_TWO,
                    ),
                ),
            ]
        )
        _mock_empty_usage("embeddings", "images")

        provider = OpenAIProvider(api_key="sk-admin")
        records = await provider.fetch_usage(START)

        assert route.call_count == 2
        assert [r.date for r in records] == [dt.date(2024, 3, 1), dt.date(2024, 3, 2)]
        assert sum(r.input_tokens for r in records) == 30


class TestOpenAIProviderResolveKeyNames:
    @pytest.mark.asyncio
    @respx.mock
    async def test_resolves_names_across_projects(self) -> "None":
        respx.get(f"{OPENAI_BASE_URL}/projects").mock(
            return_value=httpx.Response(
                200,
                json={"data": [{"id": "proj_1"}, {"id": "proj_2"}], "has_more": False},
            )
        )
        respx.get(f"{OPENAI_BASE_URL}/projects/proj_1/api_keys").mock(
            return_value=httpx.Response(
                200,
                json={
                    "data": [
                        {"id": "key_abc", "name": " Production "},
                        {"id": "key_other", "name": "Not requested"},
                    ],
                    "has_more": False,
                },
            )
        )
        respx.get(f"{OPENAI_BASE_URL}/projects/proj_2/api_keys").mock(
            return_value=httpx.Response(
                200,
                json={
                    "data": [{"id": "key_def", "name": "   "}],
                    "has_more": False,
                },
            )
        )

        provider = OpenAIProvider(api_key="sk-admin")
        names = await provider.resolve_key_names(["key_abc", "key_def"])

        # blank names are not recorded
        assert names == {"key_abc": "Production"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_failed_project_is_skipped(self) -> "None":
        respx.get(f"{OPENAI_BASE_URL}/projects").mock(
            return_value=httpx.Response(
                200,
                json={"data": [{"id": "proj_1"}, {"id": "proj_2"}], "has_more": False},
            )
        )
        respx.get(f"{OPENAI_BASE_URL}/projects/proj_1/api_keys").mock(
            return_value=httpx.Response(403, text="forbidden")
        )
        respx.get(f"{OPENAI_BASE_URL}/projects/proj_2/api_keys").mock(
            return_value=httpx.Response(
                200,
                json={"data": [{"id": "key_def", "name": "Staging"}], "has_more": False},
            )
        )

        provider = OpenAIProvider(api_key="sk-admin")
        names = await provider.resolve_key_names(["key_abc", "key_def"])

        assert names == {"key_def": "Staging"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_failed_project_listing_raises(self) -> "None":
        respx.get(f"{OPENAI_BASE_URL}/projects").mock(
            return_value=httpx.Response(500, text="boom")
        )

        provider = OpenAIProvider(api_key="sk-admin")
        with pytest.raises(TransportError):
            await provider.resolve_key_names(["key_abc"])

    @pytest.mark.asyncio
    @respx.mock(assert_all_called=False)
    async def test_no_ids_makes_no_requests(self) -> "None":
        route = respx.get(f"{OPENAI_BASE_URL}/projects")

        provider = OpenAIProvider(api_key="sk-admin")
        names = await provider.resolve_key_names([])

        assert names == {}
        assert route.call_count == 0
