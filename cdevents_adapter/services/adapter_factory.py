from typing import Dict, List, Union

from cdevents_adapter.schemas.adapter import AdapterInfo, AdapterProvider

from .adapters.base import Adapter
from .adapters.github import GitHubAdapter
from .adapters.jira import JiraAdapter


class AdapterFactory:
    _adapters: Dict[AdapterProvider, Adapter] = {}

    @classmethod
    def initialize(cls):
        cls._adapters = {
            AdapterProvider.GITHUB: GitHubAdapter(),
            AdapterProvider.JIRA: JiraAdapter(),
        }

    @classmethod
    def get_adapter(cls, provider: Union[AdapterProvider, str]) -> Adapter:
        if not cls._adapters:
            cls.initialize()
        try:
            provider = AdapterProvider(provider)
        except ValueError:
            raise KeyError(f"No adapter registered for provider: {provider}")
        if provider not in cls._adapters:
            raise KeyError(f"No adapter registered for provider: {provider.value}")
        return cls._adapters[provider]

    @classmethod
    def list_adapters(cls) -> List[AdapterInfo]:
        if not cls._adapters:
            cls.initialize()
        return [adapter.describe() for adapter in cls._adapters.values()]
