"""Mock provider for dry-run mode: no API calls, canned Portuguese reports."""

from __future__ import annotations

import random
import re
from typing import List

from mhub.providers.base import BaseProvider

_RECOMMENDATIONS = [
    "Realocar orçamento para os conjuntos com menor CPL.",
    "Pausar criativos com CTR abaixo da média da conta.",
    "Testar novas variações de criativo nos conjuntos com maior volume.",
    "Revisar a segmentação das campanhas com CPM acima da média.",
    "Aumentar gradualmente o orçamento das campanhas dentro da meta.",
    "Reforçar o remarketing para quem clicou e não converteu.",
]

_TITLES = {
    "daily": "Relatório Diário",
    "weekly": "Relatório Semanal",
    "performance": "Análise de Performance",
    "leads": "Relatório de Leads",
}


def _detect_report_type(prompt: str) -> str:
    """Read the report type from the prompt's ``TAREFA`` header line."""
    first_lines = "\n".join(prompt.splitlines()[:3]).lower()
    if "diário" in first_lines or "diario" in first_lines:
        return "daily"
    if "semanal" in first_lines:
        return "weekly"
    if "performance" in first_lines:
        return "performance"
    if "leads" in first_lines:
        return "leads"
    return "unknown"


def _extract(prompt: str, label: str) -> str:
    m = re.search(rf"-\s*{re.escape(label)}:\s*(.+)", prompt)
    return m.group(1).strip() if m else "n/d"


class MockProvider(BaseProvider):
    """Deterministic-ish mock that echoes the prompt's headline numbers.

    The returned text is shaped like a real report so dry runs exercise the
    whole report path.
    """

    def __init__(self, seed: int = 42, **kwargs):
        """Extra keyword arguments are ignored so callers can pass the live provider's kwargs."""
        if not isinstance(seed, int):
            seed = 42
        self._rng = random.Random(seed)
        self._call_log: List[str] = []

    def generate(self, prompt: str, system: str = "", max_tokens: int = 2048) -> str:
        rtype = _detect_report_type(prompt)
        self._call_log.append(rtype)

        title = _TITLES.get(rtype, "Relatório")
        recs = self._rng.sample(_RECOMMENDATIONS, 2)
        return "\n".join(
            [
                f"## {title}",
                "",
                "### Resumo executivo",
                f"- Leads: {_extract(prompt, 'Leads')}",
                f"- Investimento: {_extract(prompt, 'Investimento')}",
                f"- CPL médio: {_extract(prompt, 'CPL médio')}",
                "",
                "### Recomendações",
                f"1. {recs[0]}",
                f"2. {recs[1]}",
            ]
        )

    def stats(self) -> dict:
        return {
            "call_count": len(self._call_log),
            "call_log": list(self._call_log),
            "retry_count": 0,
            "total_tokens": 0,
            "total_input_tokens": 0,
            "total_output_tokens": 0,
            "last_error": None,
        }
