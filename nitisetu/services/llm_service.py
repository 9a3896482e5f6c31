"""
LLM service for OpenRouter API integration
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from ..exceptions import ReasoningUnavailable
from ..models.user import UserProfile

logger = logging.getLogger(__name__)

SCHEME_DETAILS_CHARS = 4000

SCHEME_DETAILS_PROMPT = """Analyze the following government scheme document text and extract structured data.
Return ONLY a JSON object (no markdown) with these fields:
- state: The specific Indian state mentioned (e.g., "Maharashtra", "Delhi"). If it applies to all of India, return "Pan-India".
- gender: "Male", "Female", or "All".
- caste: "SC", "ST", "OBC", "General", or "All".
- benefits_type: "Financial", "Subsidy", "Insurance", or "Service".
- max_value: The maximum financial benefit in numbers (e.g., 50000). If not mentioned, return 0.

Text Snippet: "{text}"
"""

ELIGIBILITY_PROMPT = """You are a strict government eligibility officer.
Analyze the scheme rules below and compare them with the applicant's profile.

Scheme Rules:
"{scheme_text}"

Applicant Profile:
{profile}

Task:
1. Determine if the applicant is eligible.
2. Find the exact text proving this.
3. List the exact documents required to apply for this scheme.

Return ONLY a JSON object (no markdown, no backticks) with this structure:
{{
  "isEligible": boolean,
  "reason": "Clear explanation of why (e.g., 'Land holding is 5 acres, but limit is 2 acres')",
  "missing_criteria": ["List specific requirements they failed, if any"],
  "citation": "Quote the exact sentence from the text that proves this rule",
  "documents_required": ["Aadhaar Card", "Land Ownership Proof"]
}}
"""

ANSWER_SYSTEM_PROMPT = (
    "You are Niti-Setu, a helpful government scheme assistant. "
    "Use the provided context to answer clearly."
)

ANSWER_PROMPT = """User Question: "{query}"

Local Database Context:
{context}

Instructions:
1. If Local Database Context is provided, answer the user's question using ONLY that context.
2. If no context is provided and the user is greeting you or making small talk, respond politely.
3. If no context is provided and the user asks about a specific scheme, say that no matching scheme was found in the database.
4. Use simple language that a common citizen can understand.
5. Cite the exact sentence or data point from the context that supports your answer.
6. If the question is about eligibility or applying, list the required documents and the application process at the end.
"""

PROFILE_PROMPT = """You are an AI assistant helping Indian farmers.
Extract the farmer's details from the text below (which may be in Hindi, English, or mixed).
Translate and standardize the extracted data into English.

Return ONLY a JSON object (no markdown, no backticks) with these exact keys.
If a detail is missing, set its value to null.

- state: string (e.g., "Maharashtra")
- district: string (e.g., "Pune")
- land_holding_acres: number (Convert bigha/hectares to acres if necessary. E.g., 2.5)
- crop_type: string (e.g., "Cotton", "Wheat")
- caste: string (Strictly use "General", "OBC", "SC", "ST", or "All")

Farmer's Spoken Text: "{text}"
"""


class LLMService:
    """Reasoning collaborator: eligibility judge, answers, and structured extraction"""

    def __init__(self, settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = settings.openrouter_api_key
        self.base_url = settings.openrouter_base_url.rstrip('/')
        self.model = settings.openrouter_model

        # HTTP client with timeout
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.llm_timeout_seconds),
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json"
            },
            transport=transport
        )

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()

    async def _complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.1,
        max_tokens: int = 2000
    ) -> str:
        """
        Send a chat completion request and return the message content

        Raises:
            ReasoningUnavailable: timeout, transport failure, non-200 reply or
                a payload without message content
        """
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens
        }

        logger.info(f"Sending request to OpenRouter API with model: {self.model}")
        try:
            response = await self.client.post(f"{self.base_url}/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            logger.error("OpenRouter API request timed out")
            raise ReasoningUnavailable("Language model request timed out") from e
        except httpx.RequestError as e:
            logger.error(f"OpenRouter API request failed: {e}")
            raise ReasoningUnavailable("Language model request failed", details={"reason": str(e)}) from e

        if response.status_code != 200:
            logger.error(f"OpenRouter API error: {response.status_code} - {response.text}")
            raise ReasoningUnavailable(
                f"Language model API error: {response.status_code}",
                details={"status_code": response.status_code}
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ReasoningUnavailable("Language model returned an unexpected payload") from e

        if not isinstance(content, str) or not content.strip():
            raise ReasoningUnavailable("Language model returned an empty answer")
        return content

    async def _complete_json(self, prompt: str) -> Dict[str, Any]:
        content = await self._complete([{"role": "user", "content": prompt}], temperature=0.0)
        parsed = self._extract_json_from_response(content)
        if parsed is None:
            raise ReasoningUnavailable(
                "Language model did not return valid JSON",
                details={"raw_response": content[:500]}
            )
        return parsed

    async def check_eligibility(self, scheme_text: str, profile: UserProfile) -> str:
        """
        Ask the model to judge one applicant against one scheme

        Args:
            scheme_text: Aggregated scheme text, already truncated by the caller
            profile: Applicant profile

        Returns:
            The model's literal answer; it is not parsed or validated here
        """
        prompt = ELIGIBILITY_PROMPT.format(
            scheme_text=scheme_text,
            profile=profile.model_dump_json(exclude_none=True, by_alias=False)
        )
        return await self._complete([{"role": "user", "content": prompt}], temperature=0.0)

    async def generate_answer(self, query: str, context_chunks: List[str]) -> str:
        """Answer a free-form question from the matched scheme passages"""
        context = "\n\n".join(chunk for chunk in context_chunks if chunk) or "(none)"
        messages = [
            {"role": "system", "content": ANSWER_SYSTEM_PROMPT},
            {"role": "user", "content": ANSWER_PROMPT.format(query=query, context=context)}
        ]
        return await self._complete(messages, temperature=0.1)

    async def extract_scheme_details(self, text: str) -> Dict[str, Any]:
        """Structured scheme facets (state, gender, caste, benefits) from the start of a document"""
        return await self._complete_json(SCHEME_DETAILS_PROMPT.format(text=text[:SCHEME_DETAILS_CHARS]))

    async def extract_profile(self, text: str) -> Dict[str, Any]:
        """Structured applicant details from spoken Hindi/English text"""
        return await self._complete_json(PROFILE_PROMPT.format(text=text))

    def _extract_json_from_response(self, content: str) -> Optional[Dict[str, Any]]:
        """
        Extract JSON from LLM response content

        Args:
            content: Raw response content from LLM

        Returns:
            Parsed JSON dict or None if extraction fails
        """
        json_match = None

        # Pattern 1: ```json ... ```
        json_block_match = re.search(r'```json\s*(.*?)\s*```', content, re.DOTALL)
        if json_block_match:
            json_match = json_block_match.group(1)

        # Pattern 2: ``` ... ``` (without json specifier)
        if not json_match:
            block_match = re.search(r'```\s*(.*?)\s*```', content, re.DOTALL)
            if block_match:
                json_match = block_match.group(1)

        # Pattern 3: Look for content that starts with { and ends with }
        if not json_match:
            brace_match = re.search(r'(\{.*\})', content, re.DOTALL)
            if brace_match:
                json_match = brace_match.group(1)

        if not json_match:
            logger.warning("No JSON content found in LLM response")
            return None

        try:
            parsed_json = json.loads(json_match.strip())
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse extracted JSON: {e}")
            return None

        if not isinstance(parsed_json, dict):
            logger.warning("Extracted JSON is not an object")
            return None
        return parsed_json
