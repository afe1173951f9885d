"""Abstract base class for report-writing LLM providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

# Analyst voice shared by every report; report types append their own focus.
ANALYST_SYSTEM_PROMPT = (
    "Você é um analista de marketing digital especializado em Meta Ads e Google Ads. "
    "Escreva em português brasileiro, de forma concisa e profissional, com insights acionáveis. "
    "Formate valores monetários como R$ X.XXX,XX e porcentagens com 2 casas decimais."
)


class BaseProvider(ABC):
    """Interface that report-writing providers implement."""

    @abstractmethod
    def generate(self, prompt: str, system: str = "", max_tokens: int = 2048) -> str:
        """Send a report prompt and return the raw text response.

        An empty ``system`` means :data:`ANALYST_SYSTEM_PROMPT`.
        """
        ...

    def stats(self) -> dict:
        return {}
