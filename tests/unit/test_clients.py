import asyncio
import json
import sys

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from locator_xray.core.errors import RepairClientError
from locator_xray.core.system_profiler import SystemProfile, SystemProfiler
from locator_xray.layers.repair.clients import (
    CloudRepairClient,
    HeuristicRepairClient,
    RepairRequest,
    create_repair_client,
)
from locator_xray.layers.repair.clients.heuristic_client import escape_xpath_string
from locator_xray.layers.repair.schema import decode_repair_payload


def _profile(openai_key=False, anthropic_key=False, openai_sdk=False, anthropic_sdk=False):
    return SystemProfile(
        python_version="3.11.4",
        os_name="Linux",
        total_ram_gb=16.0,
        available_ram_gb=8.0,
        cpu_count=8,
        has_openai_key=openai_key,
        has_anthropic_key=anthropic_key,
        has_openai_sdk=openai_sdk,
        has_anthropic_sdk=anthropic_sdk,
    )


@pytest.fixture
def request_for(android_xml):
    def build(*locators, page_source=None, platform="android"):
        return RepairRequest(
            state_id="login",
            platform=platform,
            page_source=android_xml if page_source is None else page_source,
            elements=list(locators),
            screenshot="aGVsbG8=",
        )
    return build


@pytest.fixture
def no_keys(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)


class TestSystemProfiler:
    def test_cloud_needs_key_and_sdk(self):
        assert SystemProfiler.recommend_client_type(_profile(openai_key=True, openai_sdk=True)) == "cloud"
        assert SystemProfiler.recommend_client_type(_profile(anthropic_key=True, anthropic_sdk=True)) == "cloud"
        assert SystemProfiler.recommend_client_type(_profile(openai_key=True)) == "heuristic"
        assert SystemProfiler.recommend_client_type(_profile()) == "heuristic"

    def test_get_profile(self, no_keys):
        profile = SystemProfiler.get_profile()

        assert profile.cpu_count >= 1
        assert profile.total_ram_gb > 0
        assert profile.has_openai_key is False
        assert profile.to_dict()["python_version"] == profile.python_version


class TestFactory:
    def test_heuristic(self):
        assert isinstance(create_repair_client("heuristic"), HeuristicRepairClient)

    def test_auto_without_cloud_is_heuristic(self):
        with patch.object(SystemProfiler, "recommend_client_type", return_value="heuristic"):
            assert isinstance(create_repair_client("auto"), HeuristicRepairClient)

    def test_unknown_kind_falls_back(self):
        assert isinstance(create_repair_client("quantum"), HeuristicRepairClient)

    def test_cloud_without_keys_raises(self, no_keys):
        with pytest.raises(RepairClientError, match="No API keys"):
            create_repair_client("cloud")


class TestCloudRepairClient:
    def test_openai_request(self, monkeypatch, request_for, locator_factory):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        body = json.dumps({"elements": [{"devName": "loginButton", "xpathFix": [
            {"priority": 0, "xpath": "//*[@text='Sign in']", "confidence": "High"}
        ]}]})
        response = MagicMock()
        response.choices = [MagicMock(message=MagicMock(content=body))]
        api = MagicMock()
        api.chat.completions.create = AsyncMock(return_value=response)
        fake_openai = MagicMock()
        fake_openai.AsyncOpenAI.return_value = api

        with patch.dict(sys.modules, {"openai": fake_openai}):
            client = CloudRepairClient(model="gpt-4o-mini")
            raw = asyncio.run(client.repair(request_for(locator_factory())))

        assert client.provider == "openai"
        fake_openai.AsyncOpenAI.assert_called_once_with(api_key="sk-test")
        kwargs = api.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["response_format"] == {"type": "json_object"}
        user_content = kwargs["messages"][1]["content"]
        assert "loginButton" in user_content[0]["text"]
        assert user_content[1]["image_url"]["url"].startswith("data:image/png;base64,")
        assert decode_repair_payload(raw, [locator_factory()])[0].primary.xpath == "//*[@text='Sign in']"

    def test_anthropic_response_is_unfenced(self, monkeypatch, request_for, locator_factory):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        message = MagicMock()
        message.content = [MagicMock(text='Here you go:\n```json\n{"elements": []}\n```')]
        api = MagicMock()
        api.messages.create = AsyncMock(return_value=message)
        fake_anthropic = MagicMock()
        fake_anthropic.AsyncAnthropic.return_value = api

        with patch.dict(sys.modules, {"anthropic": fake_anthropic}):
            client = CloudRepairClient()
            raw = asyncio.run(client.repair(request_for(locator_factory())))

        assert client.provider == "anthropic"
        assert client.model == "claude-3-5-sonnet-latest"
        assert json.loads(raw) == {"elements": []}
        content = api.messages.create.await_args.kwargs["messages"][0]["content"]
        assert content[0]["type"] == "image"

    def test_missing_sdk_gives_install_hint(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

        with patch.dict(sys.modules, {"openai": None}):
            with pytest.raises(RepairClientError, match="pip install openai"):
                CloudRepairClient(provider="openai")

    def test_unknown_provider(self, no_keys):
        with pytest.raises(RepairClientError, match="Unknown provider"):
            CloudRepairClient(provider="mistral")

    def test_system_prompt_names_platform_attributes(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        with patch.dict(sys.modules, {"openai": MagicMock()}):
            client = CloudRepairClient(provider="openai")

        assert "name, label, value" in client._get_system_prompt("iOS")
        assert "resource-id, content-desc, text" in client._get_system_prompt("android")
        assert "xpathFix" in client._get_system_prompt("android")


class TestHeuristicRepairClient:
    def test_exact_unique_match_ranks_first(self, request_for, locator_factory):
        payload = asyncio.run(HeuristicRepairClient().repair(request_for(locator_factory())))

        fixes = payload["elements"][0]["xpathFix"]
        assert fixes[0]["xpath"] == "//*[@text='Sign in']"
        assert fixes[0]["confidence"] == "High"
        assert fixes[1]["xpath"] == "//android.widget.Button[contains(@content-desc, 'Sign in')]"
        assert fixes[1]["confidence"] == "Medium"
        assert [f["priority"] for f in fixes] == list(range(len(fixes)))

    def test_ios_attributes(self, request_for, locator_factory, ios_xml):
        locator = locator_factory(platform="ios", value="", name="Log In", expression="//*[@name='signin']")

        payload = asyncio.run(HeuristicRepairClient().repair(request_for(locator, page_source=ios_xml, platform="ios")))

        assert payload["elements"][0]["xpathFix"][0]["xpath"] == "//*[@label='Log In']"

    def test_nothing_to_go_on(self, request_for, locator_factory):
        locator = locator_factory(value="", name="", expression="//*[@id=5]")

        payload = asyncio.run(HeuristicRepairClient().repair(request_for(locator)))

        assert payload["elements"][0]["xpathFix"] == []

    def test_unparseable_page_source(self, request_for, locator_factory):
        payload = asyncio.run(HeuristicRepairClient().repair(request_for(locator_factory(), page_source="<oops")))

        assert payload["elements"][0]["devName"] == "loginButton"
        assert payload["elements"][0]["xpathFix"] == []

    def test_tokens(self, locator_factory):
        locator = locator_factory(value="Sign in", name="Sign in", expression="//*[@text=\"Log on\" or @id='x']")

        assert HeuristicRepairClient.tokens_for(locator) == ["Sign in", "Log on"]


def test_escape_xpath_string():
    assert escape_xpath_string("plain") == "'plain'"
    assert escape_xpath_string("it's") == '"it\'s"'
    assert escape_xpath_string("say \"it's\"") == "concat('say \"it', \"'\", 's\"')"
