"""
Gemini-backed match oracle.

Asks the model to pick a candidate under the same precedence the rule
engine follows, and parses its JSON reply. Every SDK or parse problem is
raised as OracleTransientFailure so ``oracle.call_with_retry`` can retry it.
"""

import json
import re
from typing import Any, List, Optional, Sequence

from google import genai
from google.genai import types

from .logger import StructuredLogger, get_logger
from .models import NO_MATCH, Candidate, MatchResult, MatchType
from .oracle import PROFESSIONAL_CAUTION, OracleTransientFailure, TargetDescription, serialize_candidates
from .retry import is_transient_error

MATCH_PROMPT = """
I am looking for the phone number of a Personal Representative (PR) named "{subject}".
This PR is handling the estate of a deceased person named "{associated}" who lived in "{location}".

I have scraped the following candidate profiles for "{subject}".
Identify the most likely match, even if the data is incomplete. Prioritize "educated guesses" over rejection.

HIERARCHY OF MATCHING (Highest to Lowest):
1. Direct Link: Profile explicitly lists "{associated}" as a relative. (VERIFIED MATCH - 95+ Confidence)
2. Shared Unusual Surname: The PR and Deceased share an unusual last name. This is almost 100% proof of family. (HIGH CONFIDENCE - 85+)
3. Historical Location: Candidate is currently out-of-state but shows a past residence in "{city}" or {state}. (MEDIUM CONFIDENCE - 70+)
4. Exact Name Match: Candidate matches "{subject}".

CRITICAL RULES:
1. REJECT if clearly deceased.
2. ZERO BIAS: Do NOT reject or penalize a candidate solely because they are currently in a different state.
3. FAMILY LINK IS STRONG: If the candidate is explicitly linked to "{associated}" or shares a rare surname, this is a HIGH CONFIDENCE match (85-100%).
4. GEOGRAPHIC PROXIMITY: If the candidate has the correct name and lives in "{city}", this is a STRONG match (75-85%) even without a recorded relative link.
5. RELATIONAL LINKAGE: If a candidate has the correct name but NO evidence of a link AND is in a different state, cap confidence at 60%.
6. PHONE PREFERENCE: If multiple candidates are otherwise equal, pick the one with the most phone numbers.
7. ATTORNEY DETECTION: If the matched candidate's profile or snippet contains keywords like "Attorney", "Law Firm", "Esquire", "JD", "Lawyer", "Law Office", or "Counsel", return "isAttorney": true.

Candidates:
{candidates}

Return a JSON object with:
- "bestMatchIndex": index of the best matching candidate (0-based), or -1 if none shows any plausible connection.
- "confidence": score from 0 to 100.
- "reasoning": brief explanation. If an attorney is detected, end with "{caution}"
- "matchType": "VERIFIED", "HIGHLY_PROBABLE", "PLAUSIBLE_GUESS", or "NONE".
- "isAttorney": true or false.

Return ONLY raw JSON, no markdown formatting.
"""

EXTRACT_PROMPT = (
    'Analyze obituary snippets for "{subject}". Extract FULL NAMES of surviving family '
    "members (Spouse, Children, or PRs). Return ONLY a JSON array of strings. "
    "If none found, return [].\n\nSnippets:\n{text}"
)

_FENCE = re.compile(r"```(?:json)?", re.I)


def repair_json(text: Optional[str]) -> Any:
    """
    Parse a model reply that should be JSON.

    Strips markdown fences and any prose around the outermost object or
    array. Raises ValueError when nothing parseable remains.
    """
    if not text:
        raise ValueError("empty model reply")
    cleaned = _FENCE.sub("", text).strip()
    try:
        return json.loads(cleaned)
    except ValueError:
        pass
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = cleaned.find(opener), cleaned.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(cleaned[start:end + 1])
            except ValueError:
                continue
    raise ValueError(f"unparseable model reply: {cleaned[:120]}")


def result_from_reply(data: Any) -> MatchResult:
    if not isinstance(data, dict):
        raise ValueError("model reply is not a JSON object")
    try:
        index = int(data.get("bestMatchIndex", NO_MATCH))
        confidence = int(float(data.get("confidence", 0)))
    except (TypeError, ValueError) as e:
        raise ValueError(f"bad numeric field in model reply: {e}")
    try:
        match_type = MatchType(str(data.get("matchType", "NONE")).upper())
    except ValueError:
        match_type = MatchType.NONE
    if index < 0:
        index = NO_MATCH
    return MatchResult(
        best_index=index,
        confidence=confidence if index != NO_MATCH else 0,
        rationale=str(data.get("reasoning", "")),
        is_professional=bool(data.get("isAttorney", False)),
        match_type=match_type,
    )


class GeminiOracle:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-2.5-flash",
        client: Optional[Any] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        if client is None:
            if not api_key:
                raise ValueError("Missing GEMINI_API_KEY. Set env var or pass api_key.")
            client = genai.Client(api_key=api_key)
        self.client = client
        self.model = model
        self.logger = logger or get_logger()
        self.config = types.GenerateContentConfig(
            temperature=0,
            response_mime_type="application/json",
        )

    def _generate(self, prompt: str) -> Any:
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=self.config,
            )
        except Exception as e:
            log = self.logger.warning if is_transient_error(e) else self.logger.error
            log("Gemini generation failed", model=self.model, error=str(e))
            raise OracleTransientFailure(f"Gemini generation failed: {e}") from e

        try:
            return repair_json(getattr(response, "text", None))
        except ValueError as e:
            raise OracleTransientFailure(str(e)) from e

    def match(self, description: TargetDescription, candidates: Sequence[Candidate]) -> MatchResult:
        if not candidates:
            return MatchResult(rationale="No candidates to evaluate")
        prompt = MATCH_PROMPT.format(
            subject=description.subject_name or "Resident",
            associated=description.associated_name or "unknown",
            location=description.location,
            city=description.city or description.location,
            state=description.state or "the same state",
            candidates=json.dumps(serialize_candidates(candidates), indent=2),
            caution=PROFESSIONAL_CAUTION,
        )
        try:
            return result_from_reply(self._generate(prompt))
        except ValueError as e:
            raise OracleTransientFailure(str(e)) from e

    def extract_names(self, subject: str, text: str) -> List[str]:
        if not text:
            return []
        data = self._generate(EXTRACT_PROMPT.format(subject=subject, text=text))
        if not isinstance(data, list):
            raise OracleTransientFailure("name extraction reply is not a JSON array")
        return [s.strip() for s in data if isinstance(s, str) and len(s.strip()) > 3]
