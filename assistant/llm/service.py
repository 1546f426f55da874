import os
from typing import Optional

from langchain_openai import ChatOpenAI
from langchain_core.messages import HumanMessage

from assistant.config import LLM_TEMPERATURE, LLM_TIMEOUT_SECONDS, OPENAI_MODEL
from assistant.providers.base import CredentialResolver, GenerativeService, GenerativeServiceError

SETTINGS_KEY = "openai_api_key"


class EnvCredentialResolver(CredentialResolver):
    def __init__(self, var: str = "OPENAI_API_KEY"):
        self.var = var

    def get_api_key(self) -> Optional[str]:
        return os.getenv(self.var) or None


class StaticCredentialResolver(CredentialResolver):
    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    def get_api_key(self) -> Optional[str]:
        return self.api_key or None


class SettingsCredentialResolver(CredentialResolver):
    """Key stored in the `settings` table (company-wide configuration)."""

    def __init__(self, store):
        self.store = store

    def get_api_key(self) -> Optional[str]:
        return self.store.get_setting(SETTINGS_KEY) or None


class ChainCredentialResolver(CredentialResolver):
    """First resolver that yields a key wins."""

    def __init__(self, *resolvers: CredentialResolver):
        self.resolvers = resolvers

    def get_api_key(self) -> Optional[str]:
        for r in self.resolvers:
            key = r.get_api_key()
            if key:
                return key
        return None


class OpenAIChatService(GenerativeService):
    """
    Chat model behind the fallback adapter.
    The key is resolved per call so a rotated key is picked up without a restart.
    """

    def __init__(
        self,
        credentials: CredentialResolver,
        model: str = OPENAI_MODEL,
        temperature: float = LLM_TEMPERATURE,
        timeout: float = LLM_TIMEOUT_SECONDS,
    ):
        self.credentials = credentials
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self._llm: Optional[ChatOpenAI] = None
        self._llm_key: Optional[str] = None

    def _client(self) -> ChatOpenAI:
        key = self.credentials.get_api_key()
        if not key:
            raise GenerativeServiceError("no API key configured")
        if self._llm is None or self._llm_key != key:
            self._llm = ChatOpenAI(
                model=self.model,
                temperature=self.temperature,
                api_key=key,
                timeout=self.timeout,
                max_retries=0,
            )
            self._llm_key = key
        return self._llm

    def complete(self, prompt: str) -> str:
        llm = self._client()
        try:
            resp = llm.invoke([HumanMessage(content=prompt)])
        except Exception as e:
            raise GenerativeServiceError(str(e)) from e
        content = resp.content
        if isinstance(content, list):
            # content blocks -> plain text
            content = "".join(
                b.get("text", "") if isinstance(b, dict) else str(b) for b in content
            )
        return content or ""
