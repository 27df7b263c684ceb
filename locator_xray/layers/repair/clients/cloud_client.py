import json
import logging
import os
from typing import Any, Dict, List, Optional

from locator_xray.core.errors import RepairClientError
from locator_xray.layers.repair.clients.base import RepairClient, RepairRequest
from locator_xray.layers.repair.schema import RepairResponse, strip_code_fences

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-3-5-sonnet-latest",
}

# keeps prompts under provider context limits for very large page sources
MAX_XML_CHARS = 400_000


class CloudRepairClient(RepairClient):
    """
    Repair client backed by OpenAI or Anthropic.

    Requires OPENAI_API_KEY or ANTHROPIC_API_KEY environment variables.
    The screenshot is attached as an image and the model is asked for a JSON
    object following the ``RepairResponse`` schema.
    """

    name = "cloud"

    def __init__(
        self,
        provider: str = "auto",
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ):
        self.provider = provider
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = None
        self._init_client()

    def _init_client(self) -> None:
        """Initialize the async API client."""
        openai_key = os.environ.get("OPENAI_API_KEY")
        anthropic_key = os.environ.get("ANTHROPIC_API_KEY")

        if self.provider == "auto":
            if openai_key:
                self.provider = "openai"
            elif anthropic_key:
                self.provider = "anthropic"
            else:
                raise RepairClientError(
                    "No API keys found for CloudRepairClient. Set OPENAI_API_KEY or ANTHROPIC_API_KEY."
                )

        if self.provider == "openai":
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise RepairClientError("Please install openai: pip install openai") from e
            self.client = AsyncOpenAI(api_key=openai_key)

        elif self.provider == "anthropic":
            try:
                from anthropic import AsyncAnthropic
            except ImportError as e:
                raise RepairClientError("Please install anthropic: pip install anthropic") from e
            self.client = AsyncAnthropic(api_key=anthropic_key)

        else:
            raise RepairClientError(f"Unknown provider '{self.provider}'")

        self.model = self.model or DEFAULT_MODELS[self.provider]
        logger.info(f"[CloudRepairClient] Initialized using {self.provider} ({self.model})")

    async def repair(self, request: RepairRequest) -> Any:
        system = self._get_system_prompt(request.platform)
        user = self._build_user_prompt(request)
        logger.debug(
            f"[CloudRepairClient] Requesting repairs for {len(request.elements)} elements "
            f"in {request.state_id} ({request.platform})"
        )
        if self.provider == "openai":
            return await self._query_openai(system, user, request.screenshot)
        return await self._query_anthropic(system, user, request.screenshot)

    def _get_system_prompt(self, platform: str) -> str:
        schema = json.dumps(RepairResponse.model_json_schema(by_alias=True))
        return f"""You repair XPath locators for a mobile {platform} application.

You will receive:
1. A screenshot of the screen.
2. The page source XML the locators run against.
3. A list of elements whose XPath no longer matches.

For every element return up to three candidate XPaths ranked by priority
(0 = primary, 1 and 2 = alternatives). Each candidate has "priority",
"xpath", "confidence" (one of High, Medium, Low), "description" and "fix"
(what changed compared to the failing expression).

GUIDELINES:
- Prefer stable attributes ({'resource-id, content-desc, text' if platform.lower() == 'android' else 'name, label, value'}).
- Avoid absolute index-based paths.
- Every candidate must select the element in the given XML.
- If no locator can be determined, use "//*[99=0]".

Respond with a single JSON object matching this schema:
{schema}
"""

    def _build_user_prompt(self, request: RepairRequest) -> str:
        xml = request.page_source or ""
        if len(xml) > MAX_XML_CHARS:
            logger.warning(f"[CloudRepairClient] Truncating page source from {len(xml)} characters")
            xml = xml[:MAX_XML_CHARS]
        elements = json.dumps(self._describe(request.elements_payload()), indent=2)
        return f"""STATE: {request.state_id}
PLATFORM: {request.platform}

FAILING ELEMENTS:
{elements}

PAGE SOURCE:
{xml}
"""

    @staticmethod
    def _describe(elements: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [
            {
                "id": element.get("id"),
                "devName": element.get("devName"),
                "name": element.get("name"),
                "description": element.get("description"),
                "value": element.get("value"),
                "isDynamicValue": element.get("isDynamicValue"),
                "xpath": {
                    "xpathExpression": element["xpath"].get("xpathExpression"),
                    "numberOfMatches": element["xpath"].get("numberOfMatches"),
                },
            }
            for element in elements
        ]

    async def _query_openai(self, system: str, user: str, screenshot: Optional[str]) -> Any:
        content: List[Dict[str, Any]] = [{"type": "text", "text": user}]
        if screenshot:
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:image/png;base64,{screenshot}"},
            })
        response = await self.client.chat.completions.create(
            model=self.model,
            temperature=self.temperature,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": content},
            ],
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content

    async def _query_anthropic(self, system: str, user: str, screenshot: Optional[str]) -> Any:
        content: List[Dict[str, Any]] = []
        if screenshot:
            content.append({
                "type": "image",
                "source": {"type": "base64", "media_type": "image/png", "data": screenshot},
            })
        content.append({"type": "text", "text": user})
        message = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=system,
            messages=[{"role": "user", "content": content}],
        )
        text = message.content[0].text
        # Claude often wraps JSON in markdown
        text = strip_code_fences(text)
        if not text.startswith(("{", "[")) and "{" in text:
            text = text[text.find("{"):text.rfind("}") + 1]
        return text
