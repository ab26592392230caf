"""
AI-assisted extraction
Fills fields the DOM heuristics could not find, and pulls people out of
leadership pages / org-chart PDFs, using an OpenAI-compatible endpoint
"""
import asyncio
import base64
import logging
from typing import List, Dict, Optional, Any

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from ..config import DEFAULT_AI_BASE_URL, DEFAULT_AI_MODEL
from ..errors import InferenceError
from ..models import Person
from ..utils.json_text import extract_first_json, coerce_records

# Get logger
logger = logging.getLogger(__name__)

# Values the model uses when it has nothing; never stored
PLACEHOLDER_VALUES = {"n/a", "na", "none", "null", "-", "tbd", "tba"}
PLACEHOLDER_FRAGMENTS = ("not mentioned", "unknown", "placeholder", "not specified", "not provided")

FIELD_DESCRIPTIONS = {
    "title": "Opportunity title",
    "buyer": "Buying agency / department name",
    "category": "Category or module the opportunity belongs to",
    "description": "Short description of the work (max 1500 characters)",
    "publish_date": "Date the opportunity was published",
    "closing_date": "Closing date and time for responses",
    "deadline_for_questions": "Deadline for asking questions",
    "rfq_type": "RFQ type (e.g. 'Labour hire', 'ICT services')",
    "estimated_start_date": "Estimated start date",
    "initial_contract_duration": "Initial contract duration",
    "location": "Location of work",
    "working_arrangement": "Working arrangement (remote, hybrid, on site)",
    "security_clearance": "Required security clearance",
    "buyer_contact": "Buyer contact e-mail address",
}


def is_placeholder(value: Any) -> bool:
    """True for empty or filler values like 'Not mentioned' / 'N/A'"""
    if value is None:
        return True
    text = str(value).strip().lower()
    if not text or text in PLACEHOLDER_VALUES:
        return True
    return any(fragment in text for fragment in PLACEHOLDER_FRAGMENTS)


class InferenceClient:
    """
    Thin wrapper over the async OpenAI client: infer(prompt, document) -> str
    Retries a fixed number of times with a fixed backoff; each attempt is bounded
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_AI_MODEL,
        base_url: str = DEFAULT_AI_BASE_URL,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        timeout: float = 60.0,
        client: Any = None
    ):
        """
        Args:
            api_key: OpenRouter / OpenAI API key
            model: Model name on the endpoint
            base_url: OpenAI-compatible base URL
            max_retries: Total attempts per call
            retry_delay: Seconds between attempts
            timeout: Per-attempt timeout in seconds
            client: Pre-built client (tests)
        """
        self.model = model
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        # Retries are handled here, not by the SDK
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)

    @staticmethod
    def _build_content(prompt: str, document: Optional[bytes]) -> Any:
        if not document:
            return prompt
        encoded = base64.b64encode(document).decode("ascii")
        return [
            {"type": "text", "text": prompt},
            {
                "type": "file",
                "file": {
                    "filename": "document.pdf",
                    "file_data": f"data:application/pdf;base64,{encoded}",
                },
            },
        ]

    async def infer(self, prompt: str, document: Optional[bytes] = None) -> str:
        """
        Args:
            prompt: Instruction text
            document: Optional PDF bytes sent as a file part

        Returns:
            Raw response text

        Raises:
            InferenceError: every attempt failed
        """
        messages = [{"role": "user", "content": self._build_content(prompt, document)}]
        last_error = None

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await asyncio.wait_for(
                    self.client.chat.completions.create(
                        model=self.model,
                        messages=messages,
                        temperature=0,
                    ),
                    timeout=self.timeout,
                )
                choices = getattr(response, "choices", None)
                if choices:
                    return choices[0].message.content or ""
                last_error = "response had no choices"
            except asyncio.TimeoutError:
                last_error = f"timed out after {self.timeout}s"
            except OpenAIError as e:
                last_error = str(e)[:200]
            except Exception as e:
                last_error = f"{type(e).__name__}: {str(e)[:200]}"

            logger.warning(f"  ⚠️  Inference attempt {attempt}/{self.max_retries} failed: {last_error}")
            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay)

        raise InferenceError(f"Inference failed after {self.max_retries} attempts: {last_error}")


class AIExtractor:
    """Prompts + response parsing on top of an inference client"""

    def __init__(self, inference: Any, max_chars: int = 50000):
        self.inference = inference
        self.max_chars = max_chars

    def _field_prompt(self, fields: List[str], content: str, hint_title: Optional[str]) -> str:
        lines = [f'- {name}: {FIELD_DESCRIPTIONS.get(name, name.replace("_", " "))}' for name in fields]
        title_line = f"\nOPPORTUNITY: {hint_title}\n" if hint_title else ""
        return f"""You are extracting structured data from an Australian government procurement opportunity.
{title_line}
Extract ONLY these fields:
{chr(10).join(lines)}

Return ONLY a valid JSON object using exactly these keys.
Use null for any field that is not present. DO NOT invent values or use placeholders like "Not mentioned".

CONTENT:
{content[:self.max_chars]}"""

    async def extract_fields(
        self,
        fields: List[str],
        content: str = "",
        document: Optional[bytes] = None,
        hint_title: Optional[str] = None
    ) -> Dict[str, str]:
        """
        Ask the model for specific missing fields

        Returns:
            field -> value for fields the model actually found; {} on failure
        """
        if not fields:
            return {}

        prompt = self._field_prompt(fields, content or "", hint_title)
        try:
            response = await self.inference.infer(prompt, document)
        except InferenceError as e:
            logger.warning(f"  ⚠️  AI field extraction gave up: {e}")
            return {}
        except Exception as e:
            logger.error(f"  ✗ AI field extraction error: {type(e).__name__}: {str(e)[:120]}")
            return {}

        data = extract_first_json(response, expect=dict)
        found = {}
        for name in fields:
            value = data.get(name)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)
            if not isinstance(value, str) or is_placeholder(value):
                continue
            found[name] = value.strip()

        if found:
            logger.info(f"  ✓ AI filled {len(found)}/{len(fields)} fields: {', '.join(sorted(found))}")
        return found

    def _people_prompt(self, agency_name: str, html: Optional[str]) -> str:
        source = "webpage" if html else "PDF organisational chart"
        prompt = f"""You are analyzing an Australian government agency's leadership {source}. Extract the names and titles of all senior personnel.

AGENCY: {agency_name}

IMPORTANT INSTRUCTIONS:
1. Only return people with actual names, usually in headings or bold text
2. DO NOT use placeholders like "Not mentioned"
3. If you cannot find any person's actual name, return an empty array []

For each person found, extract:
- name: FULL NAME (required)
- title: Position/title (e.g. "Commissioner", "Deputy Secretary")
- division: Division/branch they lead, if mentioned
- seniority_level: 1=Commissioner/Secretary/CEO, 2=Deputy Secretary/COO, 3=First Assistant Secretary/Group Manager, 4=Assistant Secretary/Director, 5=Other
- email: If publicly shown
- phone: If publicly shown

Return ONLY a valid JSON array.

Example good output:
[{{"name": "Liz Hefren-Webb", "title": "Commissioner", "division": null, "seniority_level": 1}}]"""
        if html:
            prompt += f"\n\nHTML CONTENT:\n{html[:self.max_chars]}"
        else:
            prompt += "\nFocus on the top 2-3 levels of the hierarchy."
        return prompt

    async def extract_people(
        self,
        agency_name: str,
        html: Optional[str] = None,
        document: Optional[bytes] = None
    ) -> List[Person]:
        """
        Extract senior people from a leadership page (html) or org chart (document)

        Placeholder names are dropped, so a response made only of placeholders
        yields an empty list.
        """
        if not html and not document:
            return []

        prompt = self._people_prompt(agency_name, html)
        try:
            response = await self.inference.infer(prompt, None if html else document)
        except InferenceError as e:
            logger.warning(f"  ⚠️  AI people extraction gave up: {e}")
            return []
        except Exception as e:
            logger.error(f"  ✗ AI people extraction error: {type(e).__name__}: {str(e)[:120]}")
            return []

        people = []
        for item in coerce_records(extract_first_json(response, expect=list)):
            name = str(item.get("name") or "").strip()
            if len(name) <= 2 or is_placeholder(name):
                continue

            level = item.get("seniority_level")
            try:
                level = int(level) if level is not None else None
            except (TypeError, ValueError):
                level = None

            optional = {}
            for key in ("title", "division", "email", "phone"):
                value = item.get(key)
                optional[key] = None if is_placeholder(value) else str(value).strip()

            try:
                people.append(Person(name=name, seniority_level=level, **optional))
            except ValidationError:
                logger.debug(f"Skipping malformed person entry: {item}")

        return people
