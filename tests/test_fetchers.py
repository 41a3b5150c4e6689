"""Tests for the Etherscan and OpenAI adapters."""

from types import SimpleNamespace

import diskcache as dc
import httpx
import openai
import pytest
from contract_enricher.errors import ConfigurationError
from contract_enricher.fetchers.base import Outcome, OutcomeKind, RetryPolicy, TransientKind
from contract_enricher.fetchers.classifier import ArtisticClassifier, build_messages
from contract_enricher.fetchers.etherscan import SourceFetchAdapter
from contract_enricher.pipeline.records import Annotation

from conftest import ScriptedAdapter

ETHERSCAN_URL = "https://api.etherscan.test/api"


def _source_payload(source: str) -> dict:
    return {"status": "1", "message": "OK", "result": [{"SourceCode": source}]}


def _etherscan(handler, clock, cache=None, max_attempts=None) -> SourceFetchAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SourceFetchAdapter(
        client,
        api_key="test-key",
        base_url=ETHERSCAN_URL,
        retry_policy=RetryPolicy(sleep=clock.sleep, max_attempts=max_attempts),
        cache=cache,
    )


class TestRetryLoop:
    """Test the shared retry behaviour."""
    
    @pytest.mark.asyncio
    async def test_retries_until_success(self, clock):
        """Transient outcomes are retried with the backoff for their kind."""
        adapter = ScriptedAdapter(
            outcomes=[
                Outcome.transient(TransientKind.THROTTLED, "throttled"),
                Outcome.transient(TransientKind.STATUS, "HTTP error: 502"),
                Outcome.transient(TransientKind.NETWORK, "connection reset"),
                Outcome.success("ok"),
            ],
            retry_policy=RetryPolicy(sleep=clock.sleep),
        )
        
        outcome = await adapter.invoke("payload")
        
        assert outcome == Outcome.success("ok")
        assert clock.sleeps == [3.0, 3.0, 10.0]
        assert adapter.payloads == ["payload"] * 4
    
    @pytest.mark.asyncio
    async def test_unbounded_by_default(self, clock):
        """Without a cap the adapter keeps retrying."""
        outcomes = [Outcome.transient(TransientKind.THROTTLED, "throttled")] * 50
        adapter = ScriptedAdapter(
            outcomes=outcomes + [Outcome.empty()],
            retry_policy=RetryPolicy(sleep=clock.sleep),
        )
        
        outcome = await adapter.invoke("payload")
        
        assert outcome.kind is OutcomeKind.EMPTY
        assert len(clock.sleeps) == 50
    
    @pytest.mark.asyncio
    async def test_cap_turns_into_failure(self, clock):
        """With max_attempts set, exhaustion yields a failure outcome."""
        adapter = ScriptedAdapter(
            answer=lambda payload: Outcome.transient(TransientKind.NETWORK, "down"),
            retry_policy=RetryPolicy(sleep=clock.sleep, max_attempts=3),
        )
        
        outcome = await adapter.invoke("payload")
        
        assert outcome.kind is OutcomeKind.FAILURE
        assert "down" in outcome.reason
        assert len(adapter.payloads) == 3
        assert clock.sleeps == [10.0, 10.0]


class TestSourceFetchAdapter:
    """Test Etherscan lookups against a mock transport."""
    
    @pytest.mark.asyncio
    async def test_request_parameters(self, clock):
        """The lookup is keyed by address."""
        seen = []
        
        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_source_payload("contract A {}"))
        
        adapter = _etherscan(handler, clock)
        outcome = await adapter.invoke("0xA")
        
        assert outcome == Outcome.success("contract A {}")
        params = seen[0].url.params
        assert params["module"] == "contract"
        assert params["action"] == "getsourcecode"
        assert params["address"] == "0xA"
        assert params["apikey"] == "test-key"
    
    @pytest.mark.asyncio
    async def test_no_contract(self, clock):
        """Placeholder source is a confirmed empty, not a failure."""
        adapter = _etherscan(lambda request: httpx.Response(200, json=_source_payload("0x")), clock)
        
        outcome = await adapter.invoke("0xA")
        
        assert outcome.kind is OutcomeKind.EMPTY
        assert clock.sleeps == []
    
    @pytest.mark.asyncio
    async def test_throttle_then_success(self, clock):
        """NOTOK is retried after the throttle backoff."""
        responses = [
            httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Max rate limit reached"}),
            httpx.Response(200, json=_source_payload("contract A {}")),
        ]
        adapter = _etherscan(lambda request: responses.pop(0), clock)
        
        outcome = await adapter.invoke("0xA")
        
        assert outcome == Outcome.success("contract A {}")
        assert clock.sleeps == [3.0]
    
    @pytest.mark.asyncio
    async def test_invalid_address_not_retried(self, clock):
        """Only throttling NOTOK replies are retried."""
        calls = []
        
        def handler(request):
            calls.append(request)
            return httpx.Response(
                200, json={"status": "0", "message": "NOTOK", "result": "Error! Invalid address format"}
            )
        
        adapter = _etherscan(handler, clock)
        
        outcome = await adapter.invoke("0xnot-hex")
        
        assert outcome.kind is OutcomeKind.FAILURE
        assert len(calls) == 1
        assert clock.sleeps == []
    
    @pytest.mark.asyncio
    async def test_invalid_api_key_raises(self, clock):
        adapter = _etherscan(
            lambda request: httpx.Response(
                200, json={"status": "0", "message": "NOTOK", "result": "Invalid API Key"}
            ),
            clock,
        )
        
        with pytest.raises(ConfigurationError):
            await adapter.invoke("0xA")
        assert clock.sleeps == []
    
    @pytest.mark.asyncio
    async def test_status_error_then_success(self, clock):
        """Non-success HTTP status is retried after 3 seconds."""
        responses = [
            httpx.Response(503, text="unavailable"),
            httpx.Response(200, json=_source_payload("contract A {}")),
        ]
        adapter = _etherscan(lambda request: responses.pop(0), clock)
        
        outcome = await adapter.invoke("0xA")
        
        assert outcome.kind is OutcomeKind.SUCCESS
        assert clock.sleeps == [3.0]
    
    @pytest.mark.asyncio
    async def test_network_error_then_success(self, clock):
        """Transport faults are retried after 10 seconds."""
        calls = []
        
        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json=_source_payload("contract A {}"))
        
        adapter = _etherscan(handler, clock)
        
        outcome = await adapter.invoke("0xA")
        
        assert outcome.kind is OutcomeKind.SUCCESS
        assert clock.sleeps == [10.0]
    
    @pytest.mark.asyncio
    async def test_undecodable_body_is_retried(self, clock):
        """A non-JSON body is treated like a network fault."""
        responses = [
            httpx.Response(200, text="<html>gateway</html>"),
            httpx.Response(200, json=_source_payload("contract A {}")),
        ]
        adapter = _etherscan(lambda request: responses.pop(0), clock)
        
        outcome = await adapter.invoke("0xA")
        
        assert outcome.kind is OutcomeKind.SUCCESS
        assert clock.sleeps == [10.0]
    
    @pytest.mark.asyncio
    async def test_cache_skips_second_request(self, clock, tmp_path):
        """Definitive answers are served from the disk cache."""
        calls = []
        
        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            address = request.url.params["address"]
            source = "contract A {}" if address == "0xA" else ""
            return httpx.Response(200, json=_source_payload(source))
        
        with dc.Cache(str(tmp_path / "cache")) as cache:
            adapter = _etherscan(handler, clock, cache=cache)
            
            assert (await adapter.invoke("0xA")) == Outcome.success("contract A {}")
            assert (await adapter.invoke("0xB")).kind is OutcomeKind.EMPTY
            assert (await adapter.invoke("0xA")) == Outcome.success("contract A {}")
            assert (await adapter.invoke("0xB")).kind is OutcomeKind.EMPTY
        
        assert len(calls) == 2
    
    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, clock, tmp_path):
        """A give-up is not remembered."""
        calls = []
        
        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500)
        
        with dc.Cache(str(tmp_path / "cache")) as cache:
            adapter = _etherscan(handler, clock, cache=cache, max_attempts=1)
            
            assert (await adapter.invoke("0xA")).kind is OutcomeKind.FAILURE
            assert (await adapter.invoke("0xA")).kind is OutcomeKind.FAILURE
        
        assert len(calls) == 2


class FakeCompletions:
    """Stand-in for `client.chat.completions`."""
    
    def __init__(self, replies):
        self.replies = list(replies)
        self.requests = []
    
    async def create(self, **kwargs):
        self.requests.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _classifier(replies, clock, max_attempts=None):
    completions = FakeCompletions(replies)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    adapter = ArtisticClassifier(
        client,
        model="test-model",
        retry_policy=RetryPolicy(sleep=clock.sleep, max_attempts=max_attempts),
    )
    return adapter, completions


def _status_error(cls, status_code: int):
    request = httpx.Request("POST", "https://api.openai.test/v1/chat/completions")
    response = httpx.Response(status_code, request=request)
    return cls("error", response=response, body=None)


class TestArtisticClassifier:
    """Test classification against a stubbed OpenAI client."""
    
    @pytest.mark.asyncio
    async def test_request_shape(self, clock):
        """Fixed prompts, code embedded, temperature zero."""
        adapter, completions = _classifier(["2 | playful naming scheme"], clock)
        
        outcome = await adapter.invoke("contract Poem {}")
        
        assert outcome == Outcome.success(Annotation(2, "playful naming scheme"))
        request = completions.requests[0]
        assert request["model"] == "test-model"
        assert request["temperature"] == 0.0
        assert request["messages"] == build_messages("contract Poem {}")
        assert request["messages"][0]["role"] == "system"
        assert "contract Poem {}" in request["messages"][1]["content"]
    
    @pytest.mark.asyncio
    async def test_malformed_reply_not_retried(self, clock):
        """A reply that breaks the grammar gives a null annotation, once."""
        adapter, completions = _classifier(["I think this is a 2", "1 | unused"], clock)
        
        outcome = await adapter.invoke("contract A {}")
        
        assert outcome.kind is OutcomeKind.SUCCESS
        assert outcome.value is None
        assert len(completions.requests) == 1
        assert clock.sleeps == []
    
    @pytest.mark.asyncio
    async def test_out_of_range_score_not_retried(self, clock):
        adapter, completions = _classifier(["7 | very artistic"], clock)
        
        outcome = await adapter.invoke("contract A {}")
        
        assert outcome == Outcome.success(None)
        assert len(completions.requests) == 1
    
    @pytest.mark.asyncio
    async def test_transport_errors_retried(self, clock):
        """Rate limits, 5xx and connection errors are transient."""
        request = httpx.Request("POST", "https://api.openai.test/v1/chat/completions")
        adapter, completions = _classifier(
            [
                _status_error(openai.RateLimitError, 429),
                _status_error(openai.InternalServerError, 500),
                openai.APIConnectionError(request=request),
                "3 | generative art",
            ],
            clock,
        )
        
        outcome = await adapter.invoke("contract Art {}")
        
        assert outcome == Outcome.success(Annotation(3, "generative art"))
        assert clock.sleeps == [3.0, 3.0, 10.0]
    
    @pytest.mark.asyncio
    async def test_client_error_is_permanent(self, clock):
        """A 4xx other than rate limiting fails the record without retry."""
        adapter, completions = _classifier(
            [_status_error(openai.BadRequestError, 400), "1 | unused"],
            clock,
        )
        
        outcome = await adapter.invoke("contract A {}")
        
        assert outcome.kind is OutcomeKind.FAILURE
        assert len(completions.requests) == 1
    
    @pytest.mark.parametrize("error_class,status_code", [
        (openai.APIStatusError, 408),
        (openai.ConflictError, 409),
    ])
    @pytest.mark.asyncio
    async def test_timeout_and_conflict_retried(self, clock, error_class, status_code):
        """Request timeout and conflict replies can succeed on a later try."""
        adapter, completions = _classifier(
            [_status_error(error_class, status_code), "2 | playful naming scheme"],
            clock,
        )
        
        outcome = await adapter.invoke("contract A {}")
        
        assert outcome == Outcome.success(Annotation(2, "playful naming scheme"))
        assert len(completions.requests) == 2
        assert clock.sleeps == [3.0]
    
    @pytest.mark.parametrize("error_class,status_code", [
        (openai.AuthenticationError, 401),
        (openai.PermissionDeniedError, 403),
    ])
    @pytest.mark.asyncio
    async def test_rejected_key_raises(self, clock, error_class, status_code):
        """A refused key is a configuration problem, not a per-record failure."""
        adapter, completions = _classifier(
            [_status_error(error_class, status_code), "1 | unused"],
            clock,
        )
        
        with pytest.raises(ConfigurationError, match=str(status_code)):
            await adapter.invoke("contract A {}")
        assert len(completions.requests) == 1
        assert clock.sleeps == []
