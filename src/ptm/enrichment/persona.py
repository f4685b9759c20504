"""Claude API persona descriptions for cluster identities.

Personas are generated on request and handed back to the caller; nothing is
cached or written to the store.
"""

import json
import logging
import re
from typing import Any

from ..clustering.identity import format_identity_for_prompt
from ..models import ClusterIdentity
from .prompts import CLUSTER_PERSONA_PROMPT

logger = logging.getLogger(__name__)


class PersonaEnricher:
    """Describes clusters as personas using Claude API."""

    def __init__(self, config: dict[str, Any]):
        self.config = config
        api_key = config.get("claude_api_key")
        if not api_key:
            raise ValueError("Claude API key required for personas. Set ANTHROPIC_API_KEY or claude_api_key in config.")

        import anthropic
        self.client = anthropic.Anthropic(api_key=api_key)
        self.model = config.get("claude_model", "claude-sonnet-4-20250514")
        self.max_tokens = config.get("persona_max_tokens", 1500)

    @staticmethod
    def build_prompt(identity: ClusterIdentity) -> str:
        payload = format_identity_for_prompt(identity)
        return CLUSTER_PERSONA_PROMPT.format(
            identity=json.dumps(payload, ensure_ascii=False, indent=2),
            cluster_id=identity.cluster_id,
        )

    def describe(self, identity: ClusterIdentity) -> dict[str, Any]:
        """Ask Claude for a persona of one cluster."""
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": self.build_prompt(identity)}],
        )
        result = self._parse_json_response(response.content[0].text)
        result["cluster_id"] = identity.cluster_id
        return result

    def describe_all(self, identities: list[ClusterIdentity]) -> list[dict[str, Any]]:
        """Personas for several clusters; a failed cluster is reported with its error."""
        results = []
        for identity in identities:
            try:
                results.append(self.describe(identity))
            except Exception as e:
                logger.warning(f"Persona generation failed for cluster {identity.cluster_id}: {e}")
                results.append({"cluster_id": identity.cluster_id, "error": str(e)})
        return results

    @staticmethod
    def _parse_json_response(text: str) -> dict:
        """Extract JSON from Claude's response, handling markdown code blocks."""
        text = text.strip()
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

        match = re.search(r"```(?:json)?\s*\n?(.*?)\n?\s*```", text, re.DOTALL)
        if match:
            try:
                return json.loads(match.group(1).strip())
            except json.JSONDecodeError:
                pass

        match = re.search(r"\{.*\}", text, re.DOTALL)
        if match:
            try:
                return json.loads(match.group(0))
            except json.JSONDecodeError:
                pass

        # Unparseable: keep the raw text as the one-liner
        return {"name": None, "one_liner": text[:200], "persona": None}
